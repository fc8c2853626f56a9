from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path

_MANUAL_REFERENCE_NUMBER = re.compile(r"^\s*(\[\d+\]|\d+[.、．)]|\(\d+\))\s*")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class Chapter:
    title: str
    level: int = 1
    content: str = ""
    id: str | None = None
    subsections: list["Chapter"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, object], level: int | None = None) -> "Chapter":
        if not isinstance(data, dict):
            raise ValueError(f"chapter must be an object, got {type(data).__name__}")
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValueError("chapter title must be non-empty")
        raw_level = data.get("level", level or 1)
        try:
            resolved_level = int(raw_level)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"chapter level must be an integer, got {raw_level!r}") from exc
        if resolved_level < 1:
            raise ValueError(f"chapter level must be >= 1, got {resolved_level}")
        raw_children = data.get("subsections") or []
        if not isinstance(raw_children, list):
            raise ValueError("chapter subsections must be a list")
        chapter_id = data.get("id")
        return cls(
            title=title,
            level=resolved_level,
            content=str(data.get("content") or ""),
            id=str(chapter_id) if chapter_id is not None else None,
            subsections=[cls.from_dict(child, resolved_level + 1) for child in raw_children],
        )

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"level": self.level, "title": self.title}
        if self.id is not None:
            data["id"] = self.id
        if self.content:
            data["content"] = self.content
        if self.subsections:
            data["subsections"] = [child.to_dict() for child in self.subsections]
        return data

    def walk(self):
        yield self
        for child in self.subsections:
            yield from child.walk()


@dataclass
class Reference:
    id: int
    description: str

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Reference":
        if not isinstance(data, dict):
            raise ValueError(f"reference must be an object, got {type(data).__name__}")
        raw_id = data.get("id")
        try:
            ref_id = int(raw_id)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"reference id must be an integer, got {raw_id!r}") from exc
        description = str(data.get("description") or "").strip()
        if not description:
            raise ValueError(f"reference {ref_id} has an empty description")
        return cls(ref_id, description)

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "description": self.description}

    @property
    def bookmark_name(self) -> str:
        return reference_bookmark_name(self.id)

    def display_text(self) -> str:
        return f"[{self.id}] {strip_reference_numbering(self.description)}"


def reference_bookmark_name(ref_id: int | str) -> str:
    return f"_Ref_{ref_id}"


def strip_reference_numbering(description: str) -> str:
    return _MANUAL_REFERENCE_NUMBER.sub("", description or "", count=1).strip()


def load_outline(path: str | Path) -> list[Chapter]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("chapters", [])
    if not isinstance(raw, list):
        raise ValueError(f"outline must be a list of chapters: {path}")
    return [Chapter.from_dict(item) for item in raw]


def load_references(path: str | Path) -> list[Reference]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("references", [])
    if not isinstance(raw, list):
        raise ValueError(f"references must be a list: {path}")
    references = [Reference.from_dict(item) for item in raw]
    seen: set[int] = set()
    for reference in references:
        if reference.id in seen:
            raise ValueError(f"duplicate reference id: {reference.id}")
        seen.add(reference.id)
    return references


class ReferenceRegistry:
    """Reference list that grows when a citation names an unknown work.

    Numeric tokens are trusted as ids. Descriptions match an existing entry
    when either text contains the other after whitespace and case folding;
    otherwise a new entry with the next id is appended.
    """

    def __init__(self, references: list[Reference] | None = None) -> None:
        self._references: list[Reference] = list(references or [])
        self.synthesized: list[Reference] = []

    @property
    def references(self) -> list[Reference]:
        return list(self._references)

    def get(self, ref_id: int) -> Reference | None:
        for reference in self._references:
            if reference.id == ref_id:
                return reference
        return None

    def next_id(self) -> int:
        return max((reference.id for reference in self._references), default=0) + 1

    def resolve(self, value: str) -> tuple[int, bool]:
        """Return ``(id, known)``; ``known`` is False for ids absent from the list."""
        text = (value or "").strip()
        if text.isdigit():
            ref_id = int(text)
            return ref_id, self.get(ref_id) is not None
        key = _match_key(text)
        if key:
            for reference in self._references:
                other = _match_key(reference.description)
                if other and (key in other or other in key):
                    return reference.id, True
        reference = Reference(self.next_id(), text)
        self._references.append(reference)
        self.synthesized.append(reference)
        return reference.id, True


def _match_key(text: str) -> str:
    return _WHITESPACE.sub("", strip_reference_numbering(text)).casefold()
