from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

OPEN_END = -1


class SectionKind(str, Enum):
    ROOT = "root"
    FRONT = "front"
    TOC = "toc"
    LIST_OF_TABLES = "list-of-tables"
    LIST_OF_FIGURES = "list-of-figures"
    BODY = "body"
    BACK = "back"


class NodeKind(str, Enum):
    PARAGRAPH = "paragraph"
    TABLE = "table"
    SECTION_BREAK = "sectionBreak"
    OTHER = "other"


class BlockRole(str, Enum):
    HEADING = "heading"
    FRONT_TITLE = "frontTitle"
    BACK_TITLE = "backTitle"
    TOC_TITLE = "tocTitle"
    TOC_ITEM = "tocItem"
    PARAGRAPH = "paragraph"
    EQUATION = "equation"
    IMAGE_PLACEHOLDER = "image_placeholder"
    CAPTION_FIGURE = "captionFigure"
    CAPTION_TABLE = "captionTable"
    TABLE = "table"
    OTHER = "other"


@dataclass
class Owner:
    section_id: str
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"sectionId": self.section_id}
        for key in ("h1", "h2", "h3"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class Section:
    id: str
    kind: SectionKind
    title: str
    level: int
    parent_id: str | None
    start_order: int
    end_order: int = OPEN_END
    block_ids: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.end_order == OPEN_END

    def contains(self, order: int) -> bool:
        if order < self.start_order:
            return False
        return self.is_open or order <= self.end_order

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "level": self.level,
            "parentId": self.parent_id,
            "startOrder": self.start_order,
            "endOrder": self.end_order,
            "blockIds": list(self.block_ids),
        }


@dataclass
class Block:
    id: str
    order: int
    node_kind: NodeKind
    role: BlockRole
    heading_level: int
    owner: Owner
    style_id: str | None = None
    text: str | None = None
    field_instructions: list[str] = field(default_factory=list)
    bookmark_names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "order": self.order,
            "nodeKind": self.node_kind.value,
            "role": self.role.value,
            "headingLevel": self.heading_level,
            "styleId": self.style_id,
            "text": self.text,
            "owner": self.owner.to_dict(),
            "fieldInstructions": list(self.field_instructions),
            "bookmarkNames": list(self.bookmark_names),
        }


@dataclass
class TemplateMapping:
    source: str
    heading_style_ids: dict[int, str]
    sections: list[Section] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)

    def section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def section_of(self, block: Block) -> Section | None:
        return self.section(block.owner.section_id)

    def sections_of_kind(self, kind: SectionKind) -> list[Section]:
        return [section for section in self.sections if section.kind == kind]

    def blocks_in(self, section: Section) -> list[Block]:
        wanted = set(section.block_ids)
        return [block for block in self.blocks if block.id in wanted]

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "headingStyleIds": {
                f"h{level}": style_id for level, style_id in sorted(self.heading_style_ids.items())
            },
            "sections": [section.to_dict() for section in self.sections],
            "blocks": [block.to_dict() for block in self.blocks],
        }

    def export_json(self, output_path: str | Path) -> Path:
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as handle:
            json.dump(self.to_dict(), handle, ensure_ascii=False, indent=2)
        return output
