"""Tool registry for the agent core.

The registry is the single source of truth for which capabilities the model
may invoke. It projects its catalog into the OpenAI function-calling format,
validates arguments, and executes tools without ever raising past its own
boundary.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from .cache import ToolResultCache
from .types import SimpleTool, Tool, ToolHandler, ToolResult, ToolSpec
from .validation import ValidationResult, validate_params, validate_schema

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool.

    Attributes:
        name: Tool name.
        tool: The tool implementation.
        spec: Tool specification.
        schema_problems: Structural schema issues found at registration time.
    """

    name: str
    tool: Tool
    spec: ToolSpec
    schema_problems: list[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for managing and executing tools.

    Registration is expected to finish before conversations start; the
    registry is then shared read-mostly across conversations.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            spec=ToolSpec(name="search", description="Search bookmarks", parameters=schema),
            handler=search_bookmarks,
        )
        result = await registry.execute("search", {"query": "python", "limit": "5"})
    """

    def __init__(self, *, cache: ToolResultCache | None = None) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self._cache = cache

    @property
    def cache(self) -> ToolResultCache | None:
        return self._cache

    def register(self, tool: Tool) -> ToolRegistration:
        """Register a tool implementation.

        The parameter schema is checked structurally; violations are logged
        but do not prevent registration. Registering an existing name replaces
        the previous tool.

        Args:
            tool: The tool to register.

        Returns:
            The tool registration record.
        """
        name = tool.name
        problems = validate_schema(tool.spec.parameters)
        for problem in problems:
            LOGGER.warning("Tool %s has an invalid parameter schema: %s", name, problem)
        if name in self._tools:
            LOGGER.warning("Tool %s is already registered; overwriting", name)
            if self._cache is not None:
                self._cache.clear_tool(name)

        registration = ToolRegistration(name=name, tool=tool, spec=tool.spec, schema_problems=problems)
        self._tools[name] = registration
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def register_function(self, spec: ToolSpec, handler: ToolHandler) -> ToolRegistration:
        """Register a plain (sync or async) function as a tool."""
        return self.register(SimpleTool(spec=spec, handler=handler))

    def unregister(self, name: str) -> bool:
        """Unregister a tool by name.

        Returns:
            True if the tool was unregistered, False if not found.
        """
        if name not in self._tools:
            return False
        del self._tools[name]
        if self._cache is not None:
            self._cache.clear_tool(name)
        LOGGER.debug("Unregistered tool: %s", name)
        return True

    def get(self, name: str) -> Tool | None:
        registration = self._tools.get(name)
        return registration.tool if registration is not None else None

    def get_registration(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def to_openai_format(self) -> list[dict[str, Any]]:
        """Project every registered tool into the function-calling format.

        Output order follows registration order. Schemas are deep-copied so
        callers cannot mutate the registry through the returned descriptors.
        """
        tools: list[dict[str, Any]] = []
        for registration in self._tools.values():
            descriptor = registration.spec.to_openai_tool()
            descriptor["function"]["parameters"] = copy.deepcopy(registration.spec.parameters)
            tools.append(descriptor)
        return tools

    @staticmethod
    def validate_params(params: Any, schema: Mapping[str, Any]) -> ValidationResult:
        """Coerce and validate ``params``; see :func:`validate_params`."""
        return validate_params(params, schema)

    async def execute(self, name: str, params: Any) -> ToolResult:
        """Execute a tool by name.

        Never raises for tool-level problems: unknown names, invalid
        arguments and exceptions thrown by the tool body all come back as a
        failed :class:`ToolResult`.

        Args:
            name: Name of the tool to execute.
            params: Raw arguments; only the sanitized form reaches the tool.

        Returns:
            The tool's result.
        """
        registration = self._tools.get(name)
        if registration is None:
            LOGGER.warning("Tool %s not found", name)
            return ToolResult.fail(f'Tool "{name}" not found')

        validation = validate_params(params, registration.spec.parameters)
        if not validation.valid:
            LOGGER.info("Rejected call to %s: %s", name, "; ".join(validation.errors))
            return ToolResult.fail(validation.message)

        use_cache = self._cache is not None and registration.spec.cacheable
        if use_cache:
            cached = self._cache.get(name, validation.sanitized)  # type: ignore[union-attr]
            if cached is not None:
                return cached

        start = time.perf_counter()
        try:
            result = await registration.tool.execute(validation.sanitized)
        except Exception as exc:
            LOGGER.exception("Tool %s failed", name)
            return ToolResult.fail(str(exc) or exc.__class__.__name__)
        duration_ms = (time.perf_counter() - start) * 1000
        LOGGER.debug("Tool %s completed in %.2fms", name, duration_ms)

        if not isinstance(result, ToolResult):
            result = ToolResult.ok(result)
        if use_cache and result.success:
            self._cache.set(name, validation.sanitized, result)  # type: ignore[union-attr]
        return result

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
