from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from docx import Document

from .mapping_types import BlockRole, SectionKind, TemplateMapping
from .ooxml import get_attr, instruction_texts, qn
from .package import PackageError, ensure_readable_file
from .style_reader import StyleDefinition, find_style_by_name, parse_styles

_STYLEREF = re.compile(r"^\s*STYLEREF\s+(?:\"([^\"]+)\"|(\S+))", re.IGNORECASE)


@dataclass
class HeaderFieldReport:
    section_index: int
    variant: str
    instruction: str
    styleref_target: str | None = None
    resolution: str | None = None

    @property
    def is_styleref(self) -> bool:
        return self.styleref_target is not None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None

    def describe(self) -> str:
        line = f"section {self.section_index} [{self.variant}] {self.instruction}"
        if self.is_styleref:
            status = self.resolution or "UNRESOLVED"
            line += f" -> {self.styleref_target} ({status})"
        return line

    def to_dict(self) -> dict[str, object]:
        return {
            "section": self.section_index,
            "variant": self.variant,
            "instruction": self.instruction,
            "styleref_target": self.styleref_target,
            "resolution": self.resolution,
        }


def inspect_header_fields(path: str | Path) -> list[HeaderFieldReport]:
    """List every field instruction in the page headers of a .docx file.

    ``STYLEREF`` targets are checked against the style names, style ids and
    outline levels declared in the document, which is where a misspelled
    chapter style shows up before Word renders "Error! No text of specified
    style in document."
    """
    path = Path(path)
    ensure_readable_file(path)
    with path.open("rb") as handle:
        if handle.read(2) != b"PK":
            raise PackageError(f"header inspection needs a zipped .docx: {path}")
    document = Document(str(path))
    styles = parse_styles(document.styles.element)

    reports: list[HeaderFieldReport] = []
    for index, section in enumerate(document.sections, start=1):
        variants = [
            ("default", section.header),
            ("first", section.first_page_header),
            ("even", section.even_page_header),
        ]
        for variant, header in variants:
            if header.is_linked_to_previous:
                continue
            for instruction in _header_instructions(header._element):
                target = _styleref_target(instruction)
                resolution = None
                if target is not None:
                    resolution = _resolve_target(target, styles)
                reports.append(
                    HeaderFieldReport(
                        section_index=index,
                        variant=variant,
                        instruction=instruction,
                        styleref_target=target,
                        resolution=resolution,
                    )
                )
    return reports


def describe_mapping(mapping: TemplateMapping) -> str:
    lines = [f"source: {mapping.source or '<memory>'}"]
    for section in mapping.sections:
        end = "end" if section.is_open else str(section.end_order)
        lines.append(
            f"[{section.kind.value}] {section.title} "
            f"({section.start_order}-{end}, {len(section.block_ids)} blocks)"
        )
        if section.kind != SectionKind.BODY:
            continue
        for block in mapping.blocks_in(section):
            if block.role == BlockRole.HEADING:
                indent = "  " * block.heading_level
                lines.append(f"{indent}h{block.heading_level} {block.text}")
    return "\n".join(lines)


def _header_instructions(element) -> list[str]:
    instructions = instruction_texts(element)
    for simple in element.iter(qn("w:fldSimple")):
        instr = (get_attr(simple, "instr") or "").strip()
        if instr:
            instructions.append(" ".join(instr.split()))
    return instructions


def _styleref_target(instruction: str) -> str | None:
    match = _STYLEREF.match(instruction)
    if match is None:
        return None
    return match.group(1) or match.group(2)


def _resolve_target(target: str, styles: dict[str, StyleDefinition]) -> str | None:
    if target.isdigit():
        levels = {style.outline_level + 1 for style in styles.values() if style.outline_level is not None}
        return "outline_level" if int(target) in levels else None
    if find_style_by_name(styles, target) is not None:
        return "style_name"
    key = target.casefold()
    if any(style_id.casefold() == key for style_id in styles):
        return "style_id"
    return None

