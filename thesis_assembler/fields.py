from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from typing import Iterable, Union

from lxml import etree

from . import config
from .ooxml import (
    PPR_ORDER,
    RPR_ORDER,
    XML_NS,
    ensure_child,
    find_child,
    get_attr,
    make,
    qn,
    set_attr,
)
from .style_config import RunStyle

_THEME_FONT_ATTRS = ("asciiTheme", "hAnsiTheme", "eastAsiaTheme", "cstheme")
_PPR_STRIP = ("sectPr", "pPrChange")


@dataclass(frozen=True)
class TextFragment:
    text: str


@dataclass(frozen=True)
class FieldFragment:
    instruction: str
    cached: str = config.FIELD_PLACEHOLDER_TEXT


@dataclass(frozen=True)
class BookmarkStart:
    name: str
    id: int


@dataclass(frozen=True)
class BookmarkEnd:
    id: int


Fragment = Union[TextFragment, FieldFragment, BookmarkStart, BookmarkEnd]


class BookmarkAllocator:
    """Hands out bookmark ids and names that are unique within one document.

    One allocator lives for exactly one generation call.
    """

    def __init__(self, start: int = config.BOOKMARK_ID_START) -> None:
        self._next_id = start
        self._ids: set[int] = set()
        self._names: set[str] = set()

    def reserve_existing(self, root: etree._Element) -> None:
        for bookmark in root.iter(qn("w:bookmarkStart")):
            name = get_attr(bookmark, "name")
            if name:
                self._names.add(name)
            raw_id = get_attr(bookmark, "id")
            if raw_id is not None and raw_id.lstrip("-").isdigit():
                self._ids.add(int(raw_id))

    def is_taken(self, name: str) -> bool:
        return name in self._names

    def release(self, name: str) -> None:
        self._names.discard(name)

    def next_id(self) -> int:
        while self._next_id in self._ids:
            self._next_id += 1
        value = self._next_id
        self._ids.add(value)
        self._next_id += 1
        return value

    def allocate(self, name: str) -> tuple[str, int]:
        unique = name
        suffix = 2
        while unique in self._names:
            unique = f"{name}_{suffix}"
            suffix += 1
        self._names.add(unique)
        return unique, self.next_id()

    def allocate_numbered(self, prefix: str) -> tuple[str, int]:
        """Name the bookmark after its own id, e.g. ``_Fig_60003``."""
        bookmark_id = self.next_id()
        name = f"{prefix}{bookmark_id}"
        suffix = 2
        while name in self._names:
            name = f"{prefix}{bookmark_id}_{suffix}"
            suffix += 1
        self._names.add(name)
        return name, bookmark_id

    @property
    def names(self) -> set[str]:
        return set(self._names)


class ParagraphBuilder:
    """Builds a paragraph from a prototype's properties plus typed fragments."""

    def __init__(
        self,
        p_pr: etree._Element | None = None,
        sample_r_pr: etree._Element | None = None,
    ) -> None:
        self._p_pr = p_pr
        self._sample_r_pr = sample_r_pr
        self._fragments: list[Fragment] = []

    @classmethod
    def from_prototype(cls, prototype: etree._Element | None) -> "ParagraphBuilder":
        if prototype is None:
            return cls()
        p_pr = find_child(prototype, "pPr")
        if p_pr is not None:
            p_pr = deepcopy(p_pr)
            for local in _PPR_STRIP:
                for child in p_pr.findall(qn(f"w:{local}")):
                    p_pr.remove(child)
        sample = _sample_run(prototype)
        r_pr = find_child(sample, "rPr") if sample is not None else None
        if r_pr is not None:
            r_pr = deepcopy(r_pr)
            for child in r_pr.findall(qn("w:rPrChange")):
                r_pr.remove(child)
        return cls(p_pr, r_pr)

    def style(self, style_id: str) -> "ParagraphBuilder":
        p_pr = self._ensure_p_pr()
        set_attr(ensure_child(p_pr, "pStyle", PPR_ORDER), "val", style_id)
        return self

    def center(self) -> "ParagraphBuilder":
        p_pr = self._ensure_p_pr()
        set_attr(ensure_child(p_pr, "jc", PPR_ORDER), "val", "center")
        return self

    def text(self, text: str) -> "ParagraphBuilder":
        if text:
            self._fragments.append(TextFragment(text))
        return self

    def field(
        self,
        instruction: str,
        cached: str = config.FIELD_PLACEHOLDER_TEXT,
    ) -> "ParagraphBuilder":
        self._fragments.append(FieldFragment(instruction, cached))
        return self

    def bookmark_start(self, name: str, bookmark_id: int) -> "ParagraphBuilder":
        self._fragments.append(BookmarkStart(name, bookmark_id))
        return self

    def bookmark_end(self, bookmark_id: int) -> "ParagraphBuilder":
        self._fragments.append(BookmarkEnd(bookmark_id))
        return self

    def extend(self, fragments: Iterable[Fragment]) -> "ParagraphBuilder":
        self._fragments.extend(fragments)
        return self

    @property
    def fragments(self) -> list[Fragment]:
        return list(self._fragments)

    def build(self, run_style: RunStyle | None = None) -> etree._Element:
        paragraph = make("w:p")
        if self._p_pr is not None:
            paragraph.append(deepcopy(self._p_pr))
        for fragment in self._fragments:
            for node in self._render(fragment):
                if run_style is not None and node.tag == qn("w:r"):
                    apply_run_style(node, run_style)
                paragraph.append(node)
        return paragraph

    def _render(self, fragment: Fragment) -> list[etree._Element]:
        if isinstance(fragment, TextFragment):
            return [self._text_run(fragment.text)]
        if isinstance(fragment, FieldFragment):
            return self._field_runs(fragment)
        if isinstance(fragment, BookmarkStart):
            return [make("w:bookmarkStart", id=str(fragment.id), name=fragment.name)]
        return [make("w:bookmarkEnd", id=str(fragment.id))]

    def _field_runs(self, fragment: FieldFragment) -> list[etree._Element]:
        begin = self._run()
        begin.append(make("w:fldChar", fldCharType="begin"))
        instr = self._run()
        instr_text = etree.SubElement(instr, qn("w:instrText"))
        instr_text.set(f"{{{XML_NS}}}space", "preserve")
        instr_text.text = f" {fragment.instruction} "
        separate = self._run()
        separate.append(make("w:fldChar", fldCharType="separate"))
        end = self._run()
        end.append(make("w:fldChar", fldCharType="end"))
        return [begin, instr, separate, self._text_run(fragment.cached), end]

    def _text_run(self, text: str) -> etree._Element:
        run = self._run()
        node = etree.SubElement(run, qn("w:t"))
        node.set(f"{{{XML_NS}}}space", "preserve")
        node.text = text
        return run

    def _run(self) -> etree._Element:
        run = make("w:r")
        if self._sample_r_pr is not None:
            run.append(deepcopy(self._sample_r_pr))
        return run

    def _ensure_p_pr(self) -> etree._Element:
        if self._p_pr is None:
            self._p_pr = make("w:pPr")
        return self._p_pr


def apply_run_style(run: etree._Element, style: RunStyle) -> None:
    r_pr = find_child(run, "rPr")
    if r_pr is None:
        r_pr = make("w:rPr")
        run.insert(0, r_pr)
    fonts = ensure_child(r_pr, "rFonts", RPR_ORDER)
    for attr in _THEME_FONT_ATTRS:
        fonts.attrib.pop(qn(f"w:{attr}"), None)
    set_attr(fonts, "eastAsia", style.font_east_asia)
    set_attr(fonts, "ascii", style.font_ascii)
    set_attr(fonts, "hAnsi", style.font_ascii)
    for local in ("sz", "szCs"):
        set_attr(ensure_child(r_pr, local, RPR_ORDER), "val", style.font_size)


def apply_run_style_tree(node: etree._Element, style: RunStyle) -> None:
    for run in node.iter(qn("w:r")):
        apply_run_style(run, style)


def strip_bookmarks(node: etree._Element) -> None:
    for tag in (qn("w:bookmarkStart"), qn("w:bookmarkEnd")):
        for bookmark in list(node.iter(tag)):
            parent = bookmark.getparent()
            if parent is not None:
                parent.remove(bookmark)


def set_paragraph_center(paragraph: etree._Element) -> None:
    p_pr = find_child(paragraph, "pPr")
    if p_pr is None:
        p_pr = make("w:pPr")
        paragraph.insert(0, p_pr)
    set_attr(ensure_child(p_pr, "jc", PPR_ORDER), "val", "center")


def _sample_run(paragraph: etree._Element) -> etree._Element | None:
    runs = list(paragraph.iter(qn("w:r")))
    for run in runs:
        if find_child(run, "t") is not None:
            return run
    return runs[0] if runs else None

