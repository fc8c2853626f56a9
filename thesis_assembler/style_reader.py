from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from lxml import etree

from .ooxml import find_child, get_attr, qn


@dataclass
class StyleDefinition:
    style_id: str
    style_type: str | None
    name: str | None
    based_on: str | None
    outline_level: int | None
    is_default: bool = False


def parse_styles(root: etree._Element | None) -> dict[str, StyleDefinition]:
    styles: dict[str, StyleDefinition] = {}
    if root is None:
        return styles
    for style in root.iter(qn("w:style")):
        style_id = get_attr(style, "styleId")
        if not style_id:
            continue
        p_pr = find_child(style, "pPr")
        outline_level = _parse_int(get_attr(find_child(p_pr, "outlineLvl"), "val"))
        styles[style_id] = StyleDefinition(
            style_id=style_id,
            style_type=get_attr(style, "type"),
            name=get_attr(find_child(style, "name"), "val"),
            based_on=get_attr(find_child(style, "basedOn"), "val"),
            outline_level=outline_level,
            is_default=_parse_on_off(get_attr(style, "default")),
        )
    return styles


def resolve_outline_level(
    style_id: str,
    styles: dict[str, StyleDefinition],
) -> int | None:
    for style in reversed(list(_collect_style_chain(styles, style_id))):
        if style.outline_level is not None:
            return style.outline_level
    return None


def find_style_by_name(
    styles: dict[str, StyleDefinition],
    name: str,
) -> StyleDefinition | None:
    wanted = _compact(name)
    if not wanted:
        return None
    for style in styles.values():
        if style.name and _compact(style.name) == wanted:
            return style
    return None


def _collect_style_chain(
    styles: dict[str, StyleDefinition],
    style_id: str,
) -> Iterable[StyleDefinition]:
    visited: set[str] = set()
    chain: list[StyleDefinition] = []
    current_id: str | None = style_id
    while current_id is not None:
        if current_id in visited:
            break
        visited.add(current_id)
        current = styles.get(current_id)
        if current is None:
            break
        chain.append(current)
        current_id = current.based_on
    chain.reverse()
    return chain


def _compact(value: str) -> str:
    return "".join(value.split()).lower()


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_on_off(value: str | None) -> bool:
    if value is None:
        return False
    return value.lower() not in {"0", "false", "off"}

