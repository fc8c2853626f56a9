from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, fields

from lxml import etree

from . import config
from .mapping import extract_mapping
from .mapping_types import Block, BlockRole, NodeKind, SectionKind, TemplateMapping
from .ooxml import (
    body_children,
    has_seq_field,
    is_w,
    normalize_for_match,
    paragraph_style_id,
)
from .style_roles import HeadingStyles
from .title_rules import TitleProfile, resolve_title_profile

_CAPTION_ROLES = (BlockRole.CAPTION_FIGURE, BlockRole.CAPTION_TABLE)


@dataclass
class PrototypeSet:
    h1: etree._Element | None = None
    h2: etree._Element | None = None
    h3: etree._Element | None = None
    normal: etree._Element | None = None
    caption: etree._Element | None = None
    reference_entry: etree._Element | None = None
    table: etree._Element | None = None
    equation: etree._Element | None = None

    def heading(self, level: int) -> etree._Element | None:
        own = {1: self.h1, 2: self.h2, 3: self.h3}.get(max(1, min(3, level)))
        return own if own is not None else (self.h1 if self.h1 is not None else self.normal)

    def missing(self) -> list[str]:
        return [item.name for item in fields(self) if getattr(self, item.name) is None]

    def detached(self) -> "PrototypeSet":
        """Deep copies, so the set survives removal of the template nodes."""
        return PrototypeSet(
            **{
                item.name: deepcopy(getattr(self, item.name))
                for item in fields(self)
            }
        )


def find_prototypes(
    body: etree._Element,
    heading_styles: HeadingStyles,
    mapping: TemplateMapping | None = None,
    profile: TitleProfile | None = None,
) -> PrototypeSet:
    profile = profile or resolve_title_profile()
    if mapping is None:
        mapping = extract_mapping(body, heading_styles, profile=profile)
    children = body_children(body)
    section_kinds = {section.id: section.kind for section in mapping.sections}
    reference_sections = {
        section.id
        for section in mapping.sections_of_kind(SectionKind.BACK)
        if profile.is_reference_title(section.title)
    }
    protos = PrototypeSet()
    normal_anywhere: etree._Element | None = None
    seq_paragraph: etree._Element | None = None

    for block in mapping.blocks:
        node = _node_at(children, block.order)
        if node is None:
            continue
        in_body = section_kinds.get(block.owner.section_id) == SectionKind.BODY
        if block.node_kind == NodeKind.TABLE:
            if protos.table is None and in_body:
                protos.table = node
            continue
        if block.node_kind != NodeKind.PARAGRAPH:
            continue
        if block.role == BlockRole.HEADING and 1 <= block.heading_level <= 3:
            attr = f"h{block.heading_level}"
            if getattr(protos, attr) is None:
                setattr(protos, attr, node)
            continue
        if block.role in _CAPTION_ROLES and protos.caption is None:
            protos.caption = node
        elif block.role == BlockRole.EQUATION and protos.equation is None:
            protos.equation = node
        if seq_paragraph is None and block.role != BlockRole.TOC_ITEM and has_seq_field(node):
            seq_paragraph = node
        if (
            protos.reference_entry is None
            and block.owner.section_id in reference_sections
            and block.role == BlockRole.PARAGRAPH
            and normalize_for_match(block.text)
        ):
            protos.reference_entry = node
        if _is_normal_candidate(block, node):
            if in_body and protos.normal is None:
                protos.normal = node
            elif normal_anywhere is None:
                normal_anywhere = node

    if protos.caption is None:
        protos.caption = seq_paragraph
    if protos.table is None:
        protos.table = next((child for child in children if is_w(child, "tbl")), None)
    if protos.normal is None:
        protos.normal = normal_anywhere or _fallback_normal(children)
    return protos


def _is_normal_candidate(block: Block, node: etree._Element) -> bool:
    if block.role != BlockRole.PARAGRAPH:
        return False
    if has_seq_field(node):
        return False
    return len(normalize_for_match(block.text)) >= config.MIN_NORMAL_TEXT_LENGTH


def _fallback_normal(children: list[etree._Element]) -> etree._Element | None:
    paragraphs = [child for child in children if is_w(child, "p")]
    for paragraph in paragraphs:
        if paragraph_style_id(paragraph) is None:
            return paragraph
    return paragraphs[0] if paragraphs else None


def _node_at(children: list[etree._Element], order: int) -> etree._Element | None:
    if 1 <= order <= len(children):
        return children[order - 1]
    return None
