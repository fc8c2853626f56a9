from __future__ import annotations

import re
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum

from lxml import etree

from . import config
from .fields import (
    BookmarkAllocator,
    ParagraphBuilder,
    apply_run_style_tree,
    strip_bookmarks,
)
from .ooxml import qn
from .outline import Chapter, ReferenceRegistry, reference_bookmark_name
from .prototypes import PrototypeSet
from .run_log import RunLogState, warn
from .style_config import StyleSettings
from .style_roles import HeadingStyles

_TOKEN_PATTERN = re.compile(r"\[\[(FIG|TBL|EQ|REF|SYM):([^\[\]\n]*?)\]\]")
_BREAK_BEFORE_INLINE = re.compile(r"\n\s*(\[\[(?:SYM|REF):)")
_BREAK_AFTER_INLINE = re.compile(r"(\[\[(?:SYM|REF):[^\]\n]+\]\])[ \t]*\n")
_HEADING_NUMBER = re.compile(
    r"^\s*(?:"
    r"第[0-9一二三四五六七八九十百零〇]+[章节]"
    r"|chapter\s+[0-9ivxlc]+[.:]?"
    r"|[0-9]+(?:\.[0-9]+)+\.?"
    r"|[0-9]+\.(?!\d)"
    r"|[0-9]{1,2}(?=\s)"
    r"|[一二三四五六七八九十]+[、.．]"
    r"|[（(][一二三四五六七八九十0-9]+[)）]"
    r")\s*",
    re.IGNORECASE,
)


class TokenKind(str, Enum):
    TEXT = "text"
    FIGURE = "FIG"
    TABLE = "TBL"
    EQUATION = "EQ"
    CITATION = "REF"
    SYMBOL = "SYM"


_INLINE_KINDS = (TokenKind.TEXT, TokenKind.CITATION, TokenKind.SYMBOL)


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str

    @property
    def is_inline(self) -> bool:
        return self.kind in _INLINE_KINDS


def tokenize(text: str | None) -> list[Token]:
    """Split content into text runs and ``[[KIND:payload]]`` placeholders.

    Anything that does not match a known placeholder exactly, including an
    empty payload or one spanning a line break, stays in the text.
    """
    tokens: list[Token] = []
    source = text or ""
    position = 0
    for match in _TOKEN_PATTERN.finditer(source):
        payload = match.group(2).strip()
        if not payload:
            continue
        if match.start() > position:
            tokens.append(Token(TokenKind.TEXT, source[position:match.start()]))
        tokens.append(Token(TokenKind(match.group(1)), payload))
        position = match.end()
    if position < len(source):
        tokens.append(Token(TokenKind.TEXT, source[position:]))
    return _merge_text(tokens)


def tidy_inline_tokens(text: str) -> str:
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = _BREAK_BEFORE_INLINE.sub(r" \1", text)
    return _BREAK_AFTER_INLINE.sub(r"\1 ", text)


def strip_heading_numbering(title: str) -> str:
    stripped = _HEADING_NUMBER.sub("", title or "", count=1).strip()
    return stripped or (title or "").strip()


def _merge_text(tokens: list[Token]) -> list[Token]:
    merged: list[Token] = []
    for token in tokens:
        if merged and token.kind == TokenKind.TEXT and merged[-1].kind == TokenKind.TEXT:
            merged[-1] = Token(TokenKind.TEXT, merged[-1].value + token.value)
        else:
            merged.append(token)
    return merged


class ContentGenerator:
    def __init__(
        self,
        prototypes: PrototypeSet,
        heading_styles: HeadingStyles,
        settings: StyleSettings | None = None,
        bookmarks: BookmarkAllocator | None = None,
        references: ReferenceRegistry | None = None,
        log_state: RunLogState | None = None,
    ) -> None:
        self.prototypes = prototypes
        self.heading_styles = heading_styles
        self.settings = settings or StyleSettings()
        self.bookmarks = bookmarks or BookmarkAllocator()
        self.references = references or ReferenceRegistry()
        self.log_state = log_state
        self._chapter: str | None = None
        self._missing_reported: set[str] = set()

    @property
    def chapter_reference(self) -> str:
        if self.settings.chapter_style_reference:
            return self.settings.chapter_style_reference
        return self.heading_styles.styleref_target(1)

    def build_chapter(self, chapter: Chapter, level: int | None = None) -> list[etree._Element]:
        level = level or chapter.level
        self._chapter = chapter.title
        nodes = [self.build_heading(chapter, level)]
        nodes.extend(self.build_nodes(chapter.content or config.CONTENT_PLACEHOLDER_TEXT))
        for child in chapter.subsections:
            nodes.extend(self.build_chapter(child, level + 1))
        return nodes

    def build_heading(self, chapter: Chapter, level: int) -> etree._Element:
        title = chapter.title
        if self.settings.strip_heading_numbering:
            title = strip_heading_numbering(title)
        own = getattr(self.prototypes, f"h{max(1, min(3, level))}")
        builder = ParagraphBuilder.from_prototype(self.prototypes.heading(level))
        if own is None:
            self._report_missing(f"h{max(1, min(3, level))}")
            builder.style(self.heading_styles.style_id(level))
        return builder.text(title).build(self.settings.for_heading(level))

    def build_nodes(self, text: str | None) -> list[etree._Element]:
        nodes: list[etree._Element] = []
        current: ParagraphBuilder | None = None

        def flush() -> None:
            nonlocal current
            if current is not None and current.fragments:
                nodes.append(current.build(self.settings.body))
            current = None

        for token in tokenize(tidy_inline_tokens(text or "")):
            if token.kind == TokenKind.TEXT:
                for index, line in enumerate(token.value.split("\n")):
                    if index:
                        flush()
                    if current is None:
                        line = line.lstrip()
                    if line.strip():
                        current = current or self._body_builder()
                        current.text(line)
            elif token.kind == TokenKind.CITATION:
                current = current or self._body_builder()
                self._citation(current, token.value)
            elif token.kind == TokenKind.SYMBOL:
                current = current or self._body_builder()
                current.text(token.value)
            else:
                flush()
                if token.kind == TokenKind.FIGURE:
                    nodes.extend(self._figure(token.value))
                elif token.kind == TokenKind.TABLE:
                    nodes.extend(self._table(token.value))
                else:
                    nodes.append(self._equation(token.value))
        flush()
        return nodes

    def _body_builder(self) -> ParagraphBuilder:
        return ParagraphBuilder.from_prototype(self.prototypes.normal)

    def _citation(self, builder: ParagraphBuilder, value: str) -> None:
        ref_id, known = self.references.resolve(value)
        if not known:
            warn(
                self.log_state,
                "citation",
                "reference id not in reference list",
                chapter=self._chapter,
                token=f"REF:{value}",
            )
        builder.text("[")
        builder.field(f"REF {reference_bookmark_name(ref_id)} \\r \\h", str(ref_id))
        builder.text("]")

    def _figure(self, description: str) -> list[etree._Element]:
        placeholder = (
            self._body_builder()
            .center()
            .text(config.IMAGE_PLACEHOLDER_TEXT)
            .build(self.settings.body)
        )
        caption = self._caption(config.FIGURE_LABEL, "Figure", "_Fig_", description)
        return [placeholder, caption]

    def _table(self, description: str) -> list[etree._Element]:
        caption = self._caption(config.TABLE_LABEL, "Table", "_Tbl_", description)
        return [caption, self._table_body()]

    def _equation(self, content: str) -> etree._Element:
        prototype = self.prototypes.equation
        if prototype is None:
            prototype = self.prototypes.normal
        return (
            ParagraphBuilder.from_prototype(prototype)
            .center()
            .text(content)
            .build(self.settings.body)
        )

    def _caption(self, label: str, sequence: str, prefix: str, description: str) -> etree._Element:
        prototype = self.prototypes.caption
        if prototype is None:
            self._report_missing("caption")
            prototype = self.prototypes.normal
        name, bookmark_id = self.bookmarks.allocate_numbered(prefix)
        builder = (
            ParagraphBuilder.from_prototype(prototype)
            .center()
            .bookmark_start(name, bookmark_id)
            .text(f"{label} ")
            .field(f"STYLEREF {self.chapter_reference} \\s")
            .text(self.settings.numbering_separator)
            .field(f"SEQ {sequence} \\* ARABIC \\s 1")
            .bookmark_end(bookmark_id)
            .text(f"  {description}")
        )
        return builder.build(self.settings.caption)

    def _table_body(self) -> etree._Element:
        prototype = self.prototypes.table
        if prototype is None:
            self._report_missing("table")
            return (
                self._body_builder()
                .center()
                .text(config.TABLE_PLACEHOLDER_TEXT)
                .build(self.settings.table)
            )
        table = deepcopy(prototype)
        strip_bookmarks(table)
        for text_node in table.iter(qn("w:t")):
            text_node.text = ""
        apply_run_style_tree(table, self.settings.table)
        return table

    def _report_missing(self, prototype: str) -> None:
        if prototype in self._missing_reported:
            return
        self._missing_reported.add(prototype)
        warn(
            self.log_state,
            "prototype",
            f"template has no {prototype} prototype; using fallback",
            chapter=self._chapter,
        )
