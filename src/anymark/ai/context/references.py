"""Natural-language reference resolution.

Users refer back to earlier results with phrases such as "open the second
one", "move it to Reading" or "把第三个删掉". Resolution is heuristic: an
ordered list of matcher strategies is tried and the first match wins. Each
matcher receives the input text plus a :class:`ReferenceContext` and returns
a :class:`ResolvedReference` or ``None``.

Default precedence:

1. Relative terms ("previous one", "last one").
2. Ordinal and cardinal positions ("the third result", "#2", "第二个").
3. Pronouns and demonstratives ("it", "this bookmark", "那个项目").
4. Literal title substring of a recently mentioned bookmark.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Sequence

from .types import ReferenceContext, ReferenceKind, ResolvedReference

__all__ = [
    "ReferenceMatcher",
    "ReferenceResolver",
    "DEFAULT_MATCHERS",
    "match_relative",
    "match_chinese_index",
    "match_english_index",
    "match_pronoun",
    "match_title",
    "parse_chinese_number",
]

LOGGER = logging.getLogger(__name__)

ReferenceMatcher = Callable[[str, ReferenceContext], "ResolvedReference | None"]

_NOUNS = r"(?:one|result|item|bookmark|project)"

_ORDINALS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "eighth": 8,
    "ninth": 9,
    "tenth": 10,
}

_CHINESE_DIGITS = {
    "零": 0,
    "一": 1,
    "二": 2,
    "两": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
}

_PREVIOUS_PATTERN = re.compile(r"上一个|上个|\b(?:the\s+)?previous\s+one\b", re.IGNORECASE)
_LAST_PATTERN = re.compile(r"最后一个|最后那个|\b(?:the\s+)?last\s+one\b", re.IGNORECASE)

_CHINESE_INDEX_PATTERNS = (
    re.compile(r"第([一二两三四五六七八九十\d]+)个"),
    re.compile(r"(\d+)号"),
    re.compile(r"第(\d+)条"),
)

_ENGLISH_INDEX_PATTERNS = (
    re.compile(rf"\bthe\s+({'|'.join(_ORDINALS)})\s+{_NOUNS}\b", re.IGNORECASE),
    re.compile(rf"\b({'|'.join(_ORDINALS)})\s+{_NOUNS}\b", re.IGNORECASE),
    re.compile(r"(?:\bnumber\s*|#\s*)(\d+)\b", re.IGNORECASE),
    re.compile(r"\b(?:result|item|bookmark|project)\s*(\d+)\b", re.IGNORECASE),
    re.compile(rf"\b(?:the\s+)?(\d+)(?:st|nd|rd|th)\s+{_NOUNS}\b", re.IGNORECASE),
)

_PRONOUN_PATTERNS = (
    re.compile(r"这个书签"),
    re.compile(r"那个书签"),
    re.compile(r"这个项目"),
    re.compile(r"那个项目"),
    re.compile(r"它"),
    re.compile(r"这个"),
    re.compile(r"那个"),
    re.compile(r"\b(?:this|that)\s+(?:bookmark|project|one)\b", re.IGNORECASE),
    re.compile(r"\bit\b", re.IGNORECASE),
)


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------
def match_relative(text: str, context: ReferenceContext) -> ResolvedReference | None:
    """Resolve "previous one" and "last one" style phrases."""

    previous = _PREVIOUS_PATTERN.search(text)
    if previous and context.last_mentioned:
        entity = context.last_mentioned[0]
        return ResolvedReference(
            kind=ReferenceKind.ENTITY,
            original_text=previous.group(0),
            id=entity.id,
            title=entity.title or None,
        )

    last = _LAST_PATTERN.search(text)
    if last and context.last_search_results:
        position = len(context.last_search_results)
        return _resolve_position(position, last.group(0), context)
    return None


def match_chinese_index(text: str, context: ReferenceContext) -> ResolvedReference | None:
    for pattern in _CHINESE_INDEX_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        position = parse_chinese_number(match.group(1))
        if position is not None and position > 0:
            return _resolve_position(position, match.group(0), context)
    return None


def match_english_index(text: str, context: ReferenceContext) -> ResolvedReference | None:
    for pattern in _ENGLISH_INDEX_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        token = match.group(1).lower()
        position = _ORDINALS.get(token)
        if position is None:
            position = int(token)
        if position > 0:
            return _resolve_position(position, match.group(0), context)
    return None


def match_pronoun(text: str, context: ReferenceContext) -> ResolvedReference | None:
    """Bind "it" / "this bookmark" / "那个" to the most recently mentioned entity."""

    if not context.last_mentioned:
        return None
    for pattern in _PRONOUN_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        entity = context.last_mentioned[0]
        return ResolvedReference(
            kind=ReferenceKind.ENTITY,
            original_text=match.group(0),
            id=entity.id,
            title=entity.title or None,
        )
    return None


def match_title(text: str, context: ReferenceContext) -> ResolvedReference | None:
    for entity in context.last_mentioned:
        if not entity.title:
            continue
        match = re.search(re.escape(entity.title), text, re.IGNORECASE)
        if match is not None:
            return ResolvedReference(
                kind=ReferenceKind.ENTITY,
                original_text=match.group(0),
                id=entity.id,
                title=entity.title,
            )
    return None


DEFAULT_MATCHERS: tuple[ReferenceMatcher, ...] = (
    match_relative,
    match_chinese_index,
    match_english_index,
    match_pronoun,
    match_title,
)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
class ReferenceResolver:
    """Runs matcher strategies in order and returns the first hit."""

    def __init__(self, matchers: Sequence[ReferenceMatcher] | None = None) -> None:
        self._matchers: tuple[ReferenceMatcher, ...] = tuple(matchers) if matchers is not None else DEFAULT_MATCHERS

    @property
    def matchers(self) -> tuple[ReferenceMatcher, ...]:
        return self._matchers

    def resolve(self, text: str, context: ReferenceContext) -> ResolvedReference | None:
        if not text:
            return None
        for matcher in self._matchers:
            reference = matcher(text, context)
            if reference is not None:
                LOGGER.debug(
                    "Resolved %r via %s -> %s",
                    reference.original_text,
                    getattr(matcher, "__name__", matcher),
                    reference.id,
                )
                return reference
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def parse_chinese_number(text: str) -> int | None:
    """Parse arabic digits or Chinese numerals below one hundred.

    Examples: ``"3"`` -> 3, ``"三"`` -> 3, ``"十一"`` -> 11, ``"二十"`` -> 20.
    """

    raw = (text or "").strip()
    if not raw:
        return None
    if raw.isdigit():
        return int(raw)
    if "十" in raw:
        head, _, tail = raw.partition("十")
        tens = _CHINESE_DIGITS.get(head) if head else 1
        ones = _CHINESE_DIGITS.get(tail) if tail else 0
        if tens is None or ones is None:
            return None
        return tens * 10 + ones
    if len(raw) == 1:
        return _CHINESE_DIGITS.get(raw)
    return None


def _resolve_position(position: int, original_text: str, context: ReferenceContext) -> ResolvedReference:
    index = position - 1
    results = context.last_search_results
    if index < len(results):
        result = results[index]
        title = result.get("title")
        return ResolvedReference(
            kind=ReferenceKind.SEARCH_RESULT,
            original_text=original_text,
            id=str(result.get("id")),
            index=index,
            title=None if title is None else str(title),
        )
    return ResolvedReference(kind=ReferenceKind.INDEX, original_text=original_text, index=index)
