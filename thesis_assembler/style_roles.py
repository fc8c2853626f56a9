from __future__ import annotations

import re
from dataclasses import dataclass, field

from lxml import etree

from . import config
from .style_reader import StyleDefinition, parse_styles, resolve_outline_level

HEADING_LEVELS = (1, 2, 3)
_HEADING_NAME_LEVEL_PATTERNS = [
    re.compile(r"\bheading\s*([1-9]\d*)\b", re.IGNORECASE),
    re.compile(r"标题\s*([1-9]\d*)"),
    re.compile(r"标题\s*([一二三])"),
    re.compile(r"([一二三])\s*级标题"),
]
_CHINESE_NUMERAL_MAP = {"一": 1, "二": 2, "三": 3}


@dataclass
class HeadingStyles:
    ids: dict[int, str]
    names: dict[int, str | None] = field(default_factory=dict)
    sources: dict[int, str] = field(default_factory=dict)

    def style_id(self, level: int) -> str:
        return self.ids[_clamp_level(level)]

    def style_name(self, level: int) -> str | None:
        return self.names.get(_clamp_level(level))

    def level_for(self, style_id: str | None) -> int | None:
        if not style_id:
            return None
        for level in HEADING_LEVELS:
            if self.ids.get(level) == style_id:
                return level
        return None

    def styleref_target(self, level: int = 1) -> str:
        """Argument for a STYLEREF field pointing at the given heading level.

        A style name is quoted; without one the bare outline level is used,
        which a renderer interprets as "nearest paragraph at that level".
        """
        name = self.style_name(level)
        if name:
            return f'"{name}"'
        return str(_clamp_level(level))


def resolve_heading_styles(styles_root: etree._Element | None) -> HeadingStyles:
    styles = parse_styles(styles_root)
    paragraph_styles = [
        style for style in styles.values() if style.style_type in (None, "paragraph")
    ]
    ids: dict[int, str] = {}
    sources: dict[int, str] = {}

    for style in paragraph_styles:
        if style.outline_level is None:
            continue
        level = style.outline_level + 1
        if level in HEADING_LEVELS and level not in ids:
            ids[level] = style.style_id
            sources[level] = "outline"

    for style in paragraph_styles:
        outline = resolve_outline_level(style.style_id, styles)
        if outline is None:
            continue
        level = outline + 1
        if level in HEADING_LEVELS and level not in ids:
            ids[level] = style.style_id
            sources[level] = "inherited"

    for style in paragraph_styles:
        level = _parse_heading_level_from_name(style.name)
        if level in HEADING_LEVELS and level not in ids:
            ids[level] = style.style_id
            sources[level] = "name"

    for level in HEADING_LEVELS:
        if level not in ids:
            ids[level] = config.DEFAULT_HEADING_STYLE_IDS[level]
            sources[level] = "fallback"

    names = {level: _style_name(styles, ids[level]) for level in HEADING_LEVELS}
    return HeadingStyles(ids=ids, names=names, sources=sources)


def _style_name(styles: dict[str, StyleDefinition], style_id: str) -> str | None:
    style = styles.get(style_id)
    return style.name if style is not None else None


def _parse_heading_level_from_name(name: str | None) -> int | None:
    if not name:
        return None
    for pattern in _HEADING_NAME_LEVEL_PATTERNS:
        match = pattern.search(name)
        if not match:
            continue
        token = match.group(1)
        if token.isdigit():
            return int(token)
        return _CHINESE_NUMERAL_MAP.get(token)
    return None


def _clamp_level(level: int) -> int:
    return max(1, min(3, int(level)))
