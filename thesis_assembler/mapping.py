from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from lxml import etree

from .mapping_types import (
    OPEN_END,
    Block,
    BlockRole,
    NodeKind,
    Owner,
    Section,
    SectionKind,
    TemplateMapping,
)
from .ooxml import (
    body_children,
    bookmark_names,
    get_attr,
    has_drawing,
    has_math,
    has_seq_field,
    instruction_texts,
    is_w,
    normalize_title,
    paragraph_style_id,
    paragraph_text,
    qn,
)
from .style_roles import HeadingStyles
from .title_rules import TitleProfile, TitleRule, resolve_title_profile

_TOC_INSTRUCTION = re.compile(r"^\s*TOC\b", re.IGNORECASE)
_TOC_CATEGORY = re.compile(r"\\c\s*\"?([^\"\\]+)\"?", re.IGNORECASE)
_FIGURE_CAPTION_PREFIX = re.compile(r"^(图|figure\b|fig\.)", re.IGNORECASE)
_TABLE_CAPTION_PREFIX = re.compile(r"^(表|table\b|tab\.)", re.IGNORECASE)
_SCOPE_KINDS = (SectionKind.TOC, SectionKind.LIST_OF_TABLES, SectionKind.LIST_OF_FIGURES)


class ExtractorMode(str, Enum):
    FRONT = "front"
    BODY = "body"
    BACK = "back"


@dataclass
class FieldFrame:
    instruction: str = ""
    scope: SectionKind | None = None
    separated: bool = False


@dataclass
class FieldScopeStack:
    """Nesting of begin/separate/end field markers across paragraphs.

    Every ``begin`` pushes a frame and every ``end`` pops one, so fields
    nested inside a TOC (page references in each entry) never close the
    TOC scope early.
    """

    frames: list[FieldFrame] = field(default_factory=list)

    @property
    def current(self) -> SectionKind | None:
        for frame in reversed(self.frames):
            if frame.scope is not None:
                return frame.scope
        return None

    def begin(self) -> None:
        self.frames.append(FieldFrame())

    def instruction(self, text: str) -> None:
        if not self.frames:
            return
        frame = self.frames[-1]
        if frame.separated:
            return
        frame.instruction += text
        frame.scope = classify_toc_instruction(frame.instruction)

    def separate(self) -> None:
        if self.frames:
            self.frames[-1].separated = True

    def end(self) -> SectionKind | None:
        if not self.frames:
            return None
        return self.frames.pop().scope

    def clear(self) -> None:
        self.frames.clear()

    def feed(self, node: etree._Element) -> SectionKind | None:
        """Apply every field marker in ``node``; return the scope it touched."""
        touched = self.current
        for item in node.iter(qn("w:fldChar"), qn("w:instrText"), qn("w:fldSimple")):
            if item.tag == qn("w:instrText"):
                self.instruction(item.text or "")
            elif item.tag == qn("w:fldSimple"):
                scope = classify_toc_instruction(get_attr(item, "instr") or "")
                touched = touched or scope
                continue
            else:
                char_type = get_attr(item, "fldCharType")
                if char_type == "begin":
                    self.begin()
                elif char_type == "separate":
                    self.separate()
                elif char_type == "end":
                    closed = self.end()
                    touched = touched or closed
                    continue
            touched = touched or self.current
        return touched


def classify_toc_instruction(instruction: str) -> SectionKind | None:
    if not _TOC_INSTRUCTION.match(instruction or ""):
        return None
    match = _TOC_CATEGORY.search(instruction)
    if match is None:
        return SectionKind.TOC
    category = match.group(1).strip().lower()
    if category.startswith(("table", "tab", "表")):
        return SectionKind.LIST_OF_TABLES
    if category.startswith(("figure", "fig", "图")):
        return SectionKind.LIST_OF_FIGURES
    return SectionKind.TOC


class MappingExtractor:
    def __init__(
        self,
        heading_styles: HeadingStyles,
        profile: TitleProfile | None = None,
        source: str = "",
    ) -> None:
        self.heading_styles = heading_styles
        self.profile = profile or resolve_title_profile()
        self.source = source

    def extract(self, body: etree._Element) -> TemplateMapping:
        self._mapping = TemplateMapping(
            source=self.source,
            heading_style_ids=dict(self.heading_styles.ids),
        )
        self._root = self._new_section(SectionKind.ROOT, "ROOT", 0, None, 1)
        self._current = self._root
        self._mode = ExtractorMode.FRONT
        self._headings: list[tuple[int, str]] = []
        self._fields = FieldScopeStack()

        for index, node in enumerate(body_children(body)):
            order = index + 1
            if is_w(node, "p"):
                self._visit_paragraph(node, order)
            elif is_w(node, "tbl"):
                self._fields.feed(node)
                self._push_block(node, order, NodeKind.TABLE, BlockRole.TABLE)
            elif is_w(node, "sectPr"):
                self._push_block(node, order, NodeKind.SECTION_BREAK, BlockRole.OTHER)
            else:
                scope = self._fields.feed(node)
                role = BlockRole.TOC_ITEM if scope is not None else BlockRole.OTHER
                self._push_block(node, order, NodeKind.OTHER, role)
        mapping = self._mapping
        del self._mapping
        return mapping

    def _visit_paragraph(self, node: etree._Element, order: int) -> None:
        raw_text = paragraph_text(node)
        scope = self._fields.feed(node)

        back_rule = self.profile.match_kind(raw_text, (SectionKind.BACK,))
        if back_rule is not None:
            self._enter_back(raw_text, order)
            self._push_paragraph(node, order, BlockRole.BACK_TITLE, raw_text, heading_level=1)
            return

        if scope is not None:
            list_rule = self.profile.match_kind(
                raw_text, (SectionKind.LIST_OF_TABLES, SectionKind.LIST_OF_FIGURES)
            )
            if list_rule is not None:
                self._open_section(list_rule.kind, normalize_title(raw_text), 1, order)
                self._push_paragraph(node, order, BlockRole.TOC_TITLE, raw_text, heading_level=1)
                return
            self._push_paragraph(node, order, BlockRole.TOC_ITEM, raw_text)
            return

        front_rule = self.profile.match_kind(raw_text, (SectionKind.FRONT,) + _SCOPE_KINDS)
        if front_rule is not None:
            self._enter_front(front_rule, raw_text, order)
            role = BlockRole.FRONT_TITLE if front_rule.kind == SectionKind.FRONT else BlockRole.TOC_TITLE
            self._push_paragraph(node, order, role, raw_text, heading_level=1)
            return

        level = self.heading_styles.level_for(paragraph_style_id(node))
        if self._mode == ExtractorMode.FRONT and level == 1:
            self._mode = ExtractorMode.BODY
            self._headings.clear()

        if self._mode == ExtractorMode.BODY and level is not None:
            title = normalize_title(raw_text)
            self._push_heading(level, title)
            if level == 1:
                self._open_section(SectionKind.BODY, title, 1, order)
            self._push_paragraph(node, order, BlockRole.HEADING, raw_text, heading_level=level)
            return

        self._push_paragraph(node, order, classify_content(node, raw_text), raw_text)

    def _enter_back(self, raw_text: str, order: int) -> None:
        self._mode = ExtractorMode.BACK
        self._headings.clear()
        self._fields.clear()
        self._open_section(SectionKind.BACK, normalize_title(raw_text), 1, order)

    def _enter_front(self, rule: TitleRule, raw_text: str, order: int) -> None:
        self._mode = ExtractorMode.FRONT
        self._headings.clear()
        self._open_section(rule.kind, normalize_title(raw_text), 1, order)

    def _push_heading(self, level: int, title: str) -> None:
        while self._headings and self._headings[-1][0] >= level:
            self._headings.pop()
        self._headings.append((level, title))

    def _owner(self) -> Owner:
        owner = Owner(section_id=self._current.id)
        if self._mode != ExtractorMode.BODY:
            return owner
        for level, title in self._headings:
            setattr(owner, f"h{level}", title)
        return owner

    def _new_section(
        self,
        kind: SectionKind,
        title: str,
        level: int,
        parent_id: str | None,
        order: int,
    ) -> Section:
        sections = self._mapping.sections
        section = Section(
            id=f"{kind.value}_{len(sections) + 1}",
            kind=kind,
            title=title,
            level=level,
            parent_id=parent_id,
            start_order=order,
        )
        sections.append(section)
        return section

    def _open_section(self, kind: SectionKind, title: str, level: int, order: int) -> None:
        if self._current.end_order == OPEN_END:
            self._current.end_order = order - 1
        self._current = self._new_section(kind, title, level, self._root.id, order)

    def _push_paragraph(
        self,
        node: etree._Element,
        order: int,
        role: BlockRole,
        raw_text: str,
        heading_level: int = 0,
    ) -> None:
        self._push_block(
            node,
            order,
            NodeKind.PARAGRAPH,
            role,
            heading_level=heading_level,
            style_id=paragraph_style_id(node),
            text=raw_text,
        )

    def _push_block(
        self,
        node: etree._Element,
        order: int,
        node_kind: NodeKind,
        role: BlockRole,
        heading_level: int = 0,
        style_id: str | None = None,
        text: str | None = None,
    ) -> None:
        blocks = self._mapping.blocks
        block = Block(
            id=f"b_{len(blocks) + 1}",
            order=order,
            node_kind=node_kind,
            role=role,
            heading_level=heading_level,
            owner=self._owner(),
            style_id=style_id,
            text=text,
            field_instructions=instruction_texts(node),
            bookmark_names=bookmark_names(node),
        )
        blocks.append(block)
        self._current.block_ids.append(block.id)


def classify_content(node: etree._Element, raw_text: str | None = None) -> BlockRole:
    if has_math(node):
        return BlockRole.EQUATION
    if has_drawing(node):
        return BlockRole.IMAGE_PLACEHOLDER
    if has_seq_field(node):
        text = normalize_title(raw_text if raw_text is not None else paragraph_text(node))
        if _FIGURE_CAPTION_PREFIX.match(text):
            return BlockRole.CAPTION_FIGURE
        if _TABLE_CAPTION_PREFIX.match(text):
            return BlockRole.CAPTION_TABLE
    return BlockRole.PARAGRAPH


def extract_mapping(
    body: etree._Element,
    heading_styles: HeadingStyles,
    profile: TitleProfile | None = None,
    source: str = "",
) -> TemplateMapping:
    return MappingExtractor(heading_styles, profile=profile, source=source).extract(body)
