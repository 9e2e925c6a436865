"""Tool system for the bookmark agent.

Example:
    from anymark.ai.tools import ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(
            name="search",
            description="Search bookmarks",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"],
            },
        ),
        handler=lambda params: {"results": store.search(params["query"])},
    )
    result = await registry.execute("search", {"query": "python"})
"""

from .cache import CacheConfig, CacheStats, ToolResultCache
from .registry import ToolRegistration, ToolRegistry
from .types import SimpleTool, Tool, ToolHandler, ToolResult, ToolSpec
from .validation import ValidationResult, coerce_value, validate_params, validate_schema

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolHandler",
    "ToolResult",
    "SimpleTool",
    # registry.py
    "ToolRegistry",
    "ToolRegistration",
    # validation.py
    "ValidationResult",
    "coerce_value",
    "validate_params",
    "validate_schema",
    # cache.py
    "CacheConfig",
    "CacheStats",
    "ToolResultCache",
]
