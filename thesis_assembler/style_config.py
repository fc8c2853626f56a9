from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

ROLES = ("heading1", "heading2", "heading3", "body", "caption", "table", "reference")
NUMBERING_SEPARATORS = {"-", "."}
_SIZE_NAMES = [
    (42.0, "初号"),
    (36.0, "小初"),
    (26.0, "一号"),
    (24.0, "小一"),
    (22.0, "二号"),
    (18.0, "小二"),
    (16.0, "三号"),
    (15.0, "小三"),
    (14.0, "四号"),
    (12.0, "小四"),
    (10.5, "五号"),
    (9.0, "小五"),
    (7.5, "六号"),
    (6.5, "小六"),
    (5.5, "七号"),
    (5.0, "八号"),
]


@dataclass
class RunStyle:
    font_east_asia: str = "SimSun"
    font_ascii: str = "Times New Roman"
    font_size: str = "24"

    def validate(self) -> None:
        if not self.font_east_asia.strip():
            raise ValueError("font_east_asia must be non-empty")
        if not self.font_ascii.strip():
            raise ValueError("font_ascii must be non-empty")
        try:
            half_points = int(self.font_size)
        except ValueError as exc:
            raise ValueError(f"font_size must be an integer in half-points, got {self.font_size!r}") from exc
        if half_points <= 0:
            raise ValueError(f"font_size must be positive, got {self.font_size!r}")

    @property
    def font_size_pt(self) -> float:
        return int(self.font_size) / 2

    @property
    def font_size_name(self) -> str | None:
        return _font_size_name_from_pt(self.font_size_pt)

    @classmethod
    def from_size_name(
        cls,
        size_name: str,
        font_east_asia: str = "SimSun",
        font_ascii: str = "Times New Roman",
    ) -> "RunStyle":
        for pt, name in _SIZE_NAMES:
            if name == size_name.strip():
                return cls(font_east_asia, font_ascii, str(int(pt * 2)))
        raise ValueError(f"unknown font size name: {size_name!r}")

    @classmethod
    def from_dict(cls, data: dict[str, object], base: "RunStyle | None" = None) -> "RunStyle":
        base = base or cls()
        east_asia = _pick(data, "font_east_asia", "fontFamilyCI") or base.font_east_asia
        ascii_font = _pick(data, "font_ascii", "fontFamilyAscii") or base.font_ascii
        size = _pick(data, "font_size", "fontSize")
        size_name = _pick(data, "font_size_name", "fontSizeName")
        if size is None and size_name:
            size = cls.from_size_name(size_name).font_size
        style = cls(east_asia, ascii_font, size or base.font_size)
        style.validate()
        return style

    def to_dict(self) -> dict[str, object]:
        return {
            "font_east_asia": self.font_east_asia,
            "font_ascii": self.font_ascii,
            "font_size": self.font_size,
            "font_size_pt": self.font_size_pt,
            "font_size_name": self.font_size_name,
        }


@dataclass
class StyleSettings:
    heading1: RunStyle = field(default_factory=lambda: RunStyle("SimHei", "Times New Roman", "32"))
    heading2: RunStyle = field(default_factory=lambda: RunStyle("SimHei", "Times New Roman", "28"))
    heading3: RunStyle = field(default_factory=lambda: RunStyle("SimHei", "Times New Roman", "24"))
    body: RunStyle = field(default_factory=lambda: RunStyle("SimSun", "Times New Roman", "24"))
    caption: RunStyle = field(default_factory=lambda: RunStyle("SimSun", "Times New Roman", "21"))
    table: RunStyle = field(default_factory=lambda: RunStyle("SimSun", "Times New Roman", "21"))
    reference: RunStyle = field(default_factory=lambda: RunStyle("SimSun", "Times New Roman", "21"))
    numbering_separator: str = "-"
    strip_heading_numbering: bool = True
    chapter_style_reference: str | None = None

    def for_role(self, role: str) -> RunStyle:
        if role not in ROLES:
            raise ValueError(f"unknown style role: {role!r}")
        return getattr(self, role)

    def for_heading(self, level: int) -> RunStyle:
        return self.for_role(f"heading{max(1, min(3, level))}")

    def validate(self) -> None:
        for role in ROLES:
            self.for_role(role).validate()
        if self.numbering_separator not in NUMBERING_SEPARATORS:
            allowed = ", ".join(sorted(NUMBERING_SEPARATORS))
            raise ValueError(
                f"numbering_separator must be one of {allowed}, got {self.numbering_separator!r}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "StyleSettings":
        settings = cls()
        for role in ROLES:
            raw = data.get(role)
            if isinstance(raw, dict):
                setattr(settings, role, RunStyle.from_dict(raw, base=settings.for_role(role)))
        separator = _pick(data, "numbering_separator", "equationSeparator")
        if separator is not None:
            settings.numbering_separator = separator
        strip = data.get("strip_heading_numbering")
        if isinstance(strip, bool):
            settings.strip_heading_numbering = strip
        reference = _pick(data, "chapter_style_reference")
        header = data.get("header")
        if reference is None and isinstance(header, dict):
            reference = _pick(header, "headerReferenceStyle")
        settings.chapter_style_reference = reference
        settings.validate()
        return settings

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {role: self.for_role(role).to_dict() for role in ROLES}
        data["numbering_separator"] = self.numbering_separator
        data["strip_heading_numbering"] = self.strip_heading_numbering
        data["chapter_style_reference"] = self.chapter_style_reference
        return data


def load_style_settings(path: str | Path | None) -> StyleSettings:
    if path is None:
        return StyleSettings()
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"style settings must be a JSON object: {path}")
    return StyleSettings.from_dict(raw)


def _pick(data: dict[str, object], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _font_size_name_from_pt(value: float | None) -> str | None:
    if value is None:
        return None
    tolerance = 0.25
    for pt, name in _SIZE_NAMES:
        if abs(value - pt) <= tolerance:
            return name
    return None
