from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Iterable

from . import config
from .mapping_types import SectionKind
from .ooxml import normalize_for_match

REFERENCES_KEY = "references"
CUSTOM_PROFILE_SCHEMA_VERSION = "1.0"
_TITLE_KINDS = {
    SectionKind.FRONT,
    SectionKind.TOC,
    SectionKind.LIST_OF_TABLES,
    SectionKind.LIST_OF_FIGURES,
    SectionKind.BACK,
}


@dataclass(frozen=True)
class TitleRule:
    key: str
    display_name: str
    kind: SectionKind
    title_keywords: tuple[str, ...] = ()
    title_patterns: tuple[str, ...] = ()

    def validate(self) -> None:
        if not self.key.strip():
            raise ValueError("title rule key must be non-empty")
        if not self.display_name.strip():
            raise ValueError("title rule display_name must be non-empty")
        if self.kind not in _TITLE_KINDS:
            raise ValueError(f"title rule kind must be front/back matter, got {self.kind.value!r}")
        if not self.title_keywords and not self.title_patterns:
            raise ValueError("title rule keywords must be non-empty")
        for pattern in self.title_patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid title pattern {pattern!r}: {exc}") from exc

    def matches(self, text: str | None) -> bool:
        compact = normalize_for_match(text).casefold()
        if not compact:
            return False
        for keyword in self.title_keywords:
            if compact == normalize_for_match(keyword).casefold():
                return True
        for pattern in self.title_patterns:
            if re.search(pattern, compact, re.IGNORECASE):
                return True
        return False

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "kind": self.kind.value,
            "title_keywords": list(self.title_keywords),
            "title_patterns": list(self.title_patterns),
        }


@dataclass(frozen=True)
class TitleProfile:
    """Recognized front/back-matter titles for one template locale."""

    key: str
    display_name: str
    rules: tuple[TitleRule, ...]

    def validate(self) -> None:
        if not self.key.strip():
            raise ValueError("title profile key must be non-empty")
        if not self.display_name.strip():
            raise ValueError("title profile display_name must be non-empty")
        for rule in self.rules:
            rule.validate()

    def match(self, text: str | None) -> TitleRule | None:
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def match_kind(self, text: str | None, kinds: Iterable[SectionKind]) -> TitleRule | None:
        wanted = set(kinds)
        for rule in self.rules:
            if rule.kind in wanted and rule.matches(text):
                return rule
        return None

    def is_front_title(self, text: str | None) -> bool:
        rule = self.match(text)
        return rule is not None and rule.kind != SectionKind.BACK

    def is_back_title(self, text: str | None) -> bool:
        return self.match_kind(text, (SectionKind.BACK,)) is not None

    def is_reference_title(self, text: str | None) -> bool:
        rule = self.match_kind(text, (SectionKind.BACK,))
        return rule is not None and rule.key == REFERENCES_KEY

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "rules": [rule.to_dict() for rule in self.rules],
        }


DEFAULT_TITLE_PROFILES: tuple[TitleProfile, ...] = (
    TitleProfile(
        key="zh_cn",
        display_name="中文学位论文",
        rules=(
            TitleRule(
                key="abstract",
                display_name="摘要",
                kind=SectionKind.FRONT,
                title_keywords=("摘要", "ABSTRACT"),
            ),
            TitleRule(
                key="list_of_figures",
                display_name="插图目录",
                kind=SectionKind.LIST_OF_FIGURES,
                title_keywords=("插图目录", "图目录"),
            ),
            TitleRule(
                key="list_of_tables",
                display_name="表格目录",
                kind=SectionKind.LIST_OF_TABLES,
                title_keywords=("表格目录", "表目录"),
            ),
            TitleRule(
                key="toc",
                display_name="目录",
                kind=SectionKind.TOC,
                title_keywords=("目录",),
            ),
            TitleRule(
                key="acknowledgement",
                display_name="致谢",
                kind=SectionKind.BACK,
                title_keywords=("致谢", "鸣谢"),
            ),
            TitleRule(
                key=REFERENCES_KEY,
                display_name="参考文献",
                kind=SectionKind.BACK,
                title_keywords=("参考文献",),
            ),
            TitleRule(
                key="author_biography",
                display_name="作者简介",
                kind=SectionKind.BACK,
                title_keywords=("作者简介",),
            ),
            TitleRule(
                key="appendix",
                display_name="附录",
                kind=SectionKind.BACK,
                title_keywords=("附录",),
                title_patterns=(r"^附录[a-z0-9]$",),
            ),
            TitleRule(
                key="publications",
                display_name="攻读学位期间发表的学术论文",
                kind=SectionKind.BACK,
                title_patterns=(r"^攻读.*期间.*发表",),
            ),
        ),
    ),
    TitleProfile(
        key="en",
        display_name="English thesis",
        rules=(
            TitleRule(
                key="abstract",
                display_name="Abstract",
                kind=SectionKind.FRONT,
                title_keywords=("Abstract",),
            ),
            TitleRule(
                key="list_of_figures",
                display_name="List of Figures",
                kind=SectionKind.LIST_OF_FIGURES,
                title_keywords=("List of Figures",),
            ),
            TitleRule(
                key="list_of_tables",
                display_name="List of Tables",
                kind=SectionKind.LIST_OF_TABLES,
                title_keywords=("List of Tables",),
            ),
            TitleRule(
                key="toc",
                display_name="Contents",
                kind=SectionKind.TOC,
                title_keywords=("Contents", "Table of Contents"),
            ),
            TitleRule(
                key="acknowledgement",
                display_name="Acknowledgements",
                kind=SectionKind.BACK,
                title_keywords=("Acknowledgements", "Acknowledgments", "Acknowledgement"),
            ),
            TitleRule(
                key=REFERENCES_KEY,
                display_name="References",
                kind=SectionKind.BACK,
                title_keywords=("References", "Bibliography"),
            ),
            TitleRule(
                key="author_biography",
                display_name="Author Biography",
                kind=SectionKind.BACK,
                title_keywords=("Author Biography", "Vita", "Curriculum Vitae"),
            ),
            TitleRule(
                key="appendix",
                display_name="Appendix",
                kind=SectionKind.BACK,
                title_keywords=("Appendix", "Appendices"),
                title_patterns=(r"^appendix[a-z0-9]$",),
            ),
            TitleRule(
                key="publications",
                display_name="Publications",
                kind=SectionKind.BACK,
                title_patterns=(r"^publications.*during",),
            ),
        ),
    ),
)


def iter_title_profiles() -> Iterable[TitleProfile]:
    custom = load_custom_title_profiles()
    custom_map = {profile.key.lower(): profile for profile in custom}
    merged: list[TitleProfile] = []
    for profile in DEFAULT_TITLE_PROFILES:
        override = custom_map.pop(profile.key.lower(), None)
        merged.append(override if override is not None else profile)
    if custom_map:
        merged.extend(sorted(custom_map.values(), key=lambda item: item.key.lower()))
    return merged


def get_title_profile_choices() -> list[tuple[str, str]]:
    return [(profile.key, profile.display_name) for profile in iter_title_profiles()]


def resolve_title_profile(key: str | None = None) -> TitleProfile:
    normalized = (key or config.DEFAULT_TITLE_PROFILE).strip().lower()
    profiles = list(iter_title_profiles())
    for profile in profiles:
        if profile.key.lower() == normalized:
            return profile
    for profile in profiles:
        if profile.key == config.DEFAULT_TITLE_PROFILE:
            return profile
    return profiles[0]


def load_custom_title_profiles() -> list[TitleProfile]:
    path = config.TITLE_PROFILES_PATH
    if not path.is_file():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return []
    items = raw.get("profiles") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []
    profiles: list[TitleProfile] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        profile = _title_profile_from_dict(item)
        if profile is None:
            continue
        try:
            profile.validate()
        except ValueError:
            continue
        profiles.append(profile)
    return profiles


def save_custom_title_profiles(profiles: Iterable[TitleProfile]) -> None:
    output = {
        "schema_version": CUSTOM_PROFILE_SCHEMA_VERSION,
        "profiles": [profile.to_dict() for profile in profiles],
    }
    config.ensure_base_dirs()
    config.TITLE_PROFILES_PATH.write_text(
        json.dumps(output, ensure_ascii=False, indent=2), encoding="utf-8"
    )


def is_builtin_title_profile(key: str) -> bool:
    normalized = (key or "").strip().lower()
    return any(profile.key.lower() == normalized for profile in DEFAULT_TITLE_PROFILES)


def _title_profile_from_dict(data: dict[str, object]) -> TitleProfile | None:
    key = data.get("key")
    display_name = data.get("display_name")
    if not isinstance(key, str) or not key.strip():
        return None
    if not isinstance(display_name, str) or not display_name.strip():
        return None
    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        rules_data = []
    rules = [rule for rule in (_title_rule_from_dict(item) for item in rules_data) if rule]
    return TitleProfile(key=key.strip(), display_name=display_name.strip(), rules=tuple(rules))


def _title_rule_from_dict(data: object) -> TitleRule | None:
    if not isinstance(data, dict):
        return None
    key = data.get("key")
    display_name = data.get("display_name")
    if not isinstance(key, str) or not key.strip():
        return None
    if not isinstance(display_name, str) or not display_name.strip():
        return None
    kind_raw = str(data.get("kind") or "")
    if kind_raw not in SectionKind._value2member_map_:
        return None
    keywords = _string_tuple(data.get("title_keywords"))
    patterns = _string_tuple(data.get("title_patterns"))
    try:
        rule = TitleRule(
            key=key.strip(),
            display_name=display_name.strip(),
            kind=SectionKind(kind_raw),
            title_keywords=keywords,
            title_patterns=patterns,
        )
        rule.validate()
        return rule
    except ValueError:
        return None


def _string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())
