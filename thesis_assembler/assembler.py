from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Iterable

from lxml import etree

from . import config
from .fields import BookmarkAllocator, ParagraphBuilder
from .generator import ContentGenerator
from .mapping import extract_mapping
from .mapping_types import SectionKind, TemplateMapping
from .ooxml import (
    body_children,
    find_child,
    get_attr,
    has_section_break,
    is_w,
    local_name,
    make,
    normalize_for_match,
    paragraph_text,
    qn,
    set_attr,
)
from .outline import Chapter, Reference, ReferenceRegistry
from .package import Package
from .prototypes import PrototypeSet, find_prototypes
from .run_log import RunLogState, WarningEntry, warn, write_log
from .style_config import StyleSettings
from .style_roles import resolve_heading_styles
from .title_rules import TitleProfile, resolve_title_profile

# CT_Settings children that must follow w:updateFields.
_SETTINGS_AFTER_UPDATE_FIELDS = {
    "hdrShapeDefaults", "footnotePr", "endnotePr", "compat", "docVars",
    "rsids", "mathPr", "attachedSchema", "themeFontLang", "clrSchemeMapping",
    "doNotIncludeSubdocsInStats", "doNotAutoCompressPictures", "forceUpgrade",
    "captions", "readModeInkLockDown", "smartTagType", "schemaLibrary",
    "shapeDefaults", "doNotEmbedSmartTags", "decimalSymbol", "listSeparator",
}
_CARRIER_PPR_STRIP = ("pStyle", "numPr", "outlineLvl")


@dataclass
class AssemblyResult:
    package: Package
    references: list[Reference]
    mapping: TemplateMapping
    warnings: list[WarningEntry] = field(default_factory=list)
    log_path: Path | None = None

    def to_bytes(self) -> bytes:
        return self.package.to_bytes()


@dataclass
class DeletionSpan:
    """Zero-based ``[start, end)`` slice of ``w:body`` children."""

    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start


class ThesisAssembler:
    def __init__(
        self,
        settings: StyleSettings | None = None,
        profile: TitleProfile | str | None = None,
        log_enabled: bool = True,
    ) -> None:
        self.settings = settings or StyleSettings()
        self.settings.validate()
        if profile is None or isinstance(profile, str):
            profile = resolve_title_profile(profile)
        self.profile = profile
        self.log_enabled = log_enabled
        self._last_log_state: RunLogState | None = None

    @property
    def last_log_state(self) -> RunLogState | None:
        return self._last_log_state

    def assemble(
        self,
        package: Package,
        chapters: Iterable[Chapter | dict],
        references: Iterable[Reference | dict] | None = None,
        source: str = "",
    ) -> AssemblyResult:
        started = perf_counter()
        log_state = RunLogState(template_path=source or "<memory>")
        self._last_log_state = log_state
        try:
            result = self._assemble(
                package,
                _coerce_chapters(chapters),
                _coerce_references(references),
                source,
                log_state,
            )
        except Exception as exc:
            log_state.error = str(exc)
            log_state.elapsed_sec = perf_counter() - started
            if self.log_enabled:
                write_log(log_state)
            raise
        log_state.elapsed_sec = perf_counter() - started
        if self.log_enabled:
            result.log_path = write_log(log_state)
        return result

    def assemble_bytes(
        self,
        data: bytes,
        chapters: Iterable[Chapter | dict],
        references: Iterable[Reference | dict] | None = None,
        source: str = "",
    ) -> bytes:
        package = Package.from_bytes(data)
        return self.assemble(package, chapters, references, source=source).to_bytes()

    def assemble_file(
        self,
        template_path: str | Path,
        chapters: Iterable[Chapter | dict],
        references: Iterable[Reference | dict] | None = None,
        output_path: str | Path | None = None,
    ) -> AssemblyResult:
        package = Package.from_path(template_path)
        result = self.assemble(package, chapters, references, source=str(template_path))
        if output_path is None:
            config.ensure_base_dirs()
            output_path = config.DEFAULT_OUTPUT_PATH
        result.package.save(output_path)
        return result

    def _assemble(
        self,
        package: Package,
        chapters: list[Chapter],
        references: list[Reference],
        source: str,
        log_state: RunLogState,
    ) -> AssemblyResult:
        body = package.body()
        heading_styles = resolve_heading_styles(package.styles_root())
        log_state.heading_style_sources = dict(heading_styles.sources)
        mapping = extract_mapping(body, heading_styles, profile=self.profile, source=source)
        log_state.section_count = len(mapping.sections)
        log_state.block_count = len(mapping.blocks)
        prototypes = find_prototypes(body, heading_styles, mapping, self.profile).detached()

        children = body_children(body)
        span = find_deletion_span(mapping, children)
        reference_title, stale_entries = self._reference_section(mapping, children)

        anchor = children[span.end] if span.end < len(children) else None
        carrier = _section_break_carrier(children[span.start:span.end])
        for node in children[span.start:span.end]:
            body.remove(node)
        log_state.deleted_count = span.end - span.start
        if carrier is not None:
            _insert_before(body, anchor, carrier)
            anchor = carrier

        registry = ReferenceRegistry(references)
        bookmarks = BookmarkAllocator()
        bookmarks.reserve_existing(package.document_root())
        generator = ContentGenerator(
            prototypes,
            heading_styles,
            self.settings,
            bookmarks,
            registry,
            log_state=log_state,
        )
        generated: list[etree._Element] = []
        for chapter in chapters:
            generated.extend(generator.build_chapter(chapter, 1))
        for node in generated:
            _insert_before(body, anchor, node)
        log_state.inserted_count = len(generated)

        for reference in registry.synthesized:
            warn(
                log_state,
                "citation",
                "reference synthesized from citation text",
                token=reference.description,
            )
        if registry.references:
            if reference_title is None:
                warn(log_state, "references", "no references title in back matter; list not inserted")
            else:
                for node in stale_entries:
                    body.remove(node)
                log_state.reference_count = self._insert_references(
                    package, reference_title, registry, prototypes, bookmarks, log_state
                )

        settings_root = package.settings_root()
        if settings_root is None:
            warn(log_state, "settings", "settings part missing; fields are not refreshed on open")
        else:
            set_update_fields(settings_root)

        return AssemblyResult(
            package=package,
            references=registry.references,
            mapping=mapping,
            warnings=log_state.warnings,
        )

    def _reference_section(
        self,
        mapping: TemplateMapping,
        children: list[etree._Element],
    ) -> tuple[etree._Element | None, list[etree._Element]]:
        for section in mapping.sections_of_kind(SectionKind.BACK):
            if not self.profile.is_reference_title(section.title):
                continue
            title = children[section.start_order - 1]
            last = len(children) if section.is_open else section.end_order
            entries = [
                node
                for node in children[section.start_order:last]
                if is_w(node, "p")
                and not has_section_break(node)
                and normalize_for_match(paragraph_text(node))
            ]
            return title, entries
        return None, []

    def _insert_references(
        self,
        package: Package,
        title: etree._Element,
        registry: ReferenceRegistry,
        prototypes: PrototypeSet,
        bookmarks: BookmarkAllocator,
        log_state: RunLogState,
    ) -> int:
        prototype = prototypes.reference_entry
        if prototype is None:
            warn(log_state, "prototype", "template has no reference entry prototype; using normal")
            prototype = prototypes.normal
        cursor = title
        for reference in registry.references:
            name = reference.bookmark_name
            if bookmarks.is_taken(name):
                if drop_bookmark(package.document_root(), name):
                    warn(log_state, "bookmark", "removed stale template bookmark", token=name)
                bookmarks.release(name)
            name, bookmark_id = bookmarks.allocate(name)
            paragraph = (
                ParagraphBuilder.from_prototype(prototype)
                .bookmark_start(name, bookmark_id)
                .text(reference.display_text())
                .bookmark_end(bookmark_id)
                .build(self.settings.reference)
            )
            cursor.addnext(paragraph)
            cursor = paragraph
        return len(registry.references)


def find_deletion_span(mapping: TemplateMapping, children: list[etree._Element]) -> DeletionSpan:
    """Placeholder body region to replace with generated chapters.

    Starts at the first body section and ends at the first back-matter
    section after it, or at the final body-level ``w:sectPr``. Without a
    body section the span is empty and sits before the first back-matter
    section, or before the final ``w:sectPr``.
    """
    body_sections = mapping.sections_of_kind(SectionKind.BODY)
    back_sections = mapping.sections_of_kind(SectionKind.BACK)
    tail = _final_sect_pr_index(children)
    if not body_sections:
        end = back_sections[0].start_order - 1 if back_sections else tail
        return DeletionSpan(end, end)
    start = body_sections[0].start_order - 1
    for section in back_sections:
        if section.start_order > body_sections[0].start_order:
            return DeletionSpan(start, section.start_order - 1)
    return DeletionSpan(start, max(start, tail))


def set_update_fields(settings_root: etree._Element) -> etree._Element:
    node = find_child(settings_root, "updateFields")
    if node is None:
        node = make("w:updateFields")
        for index, child in enumerate(settings_root):
            if isinstance(child.tag, str) and local_name(child) in _SETTINGS_AFTER_UPDATE_FIELDS:
                settings_root.insert(index, node)
                break
        else:
            settings_root.append(node)
    set_attr(node, "val", "true")
    return node


def drop_bookmark(root: etree._Element, name: str) -> bool:
    ids: set[str] = set()
    for start in list(root.iter(qn("w:bookmarkStart"))):
        if get_attr(start, "name") != name:
            continue
        bookmark_id = get_attr(start, "id")
        if bookmark_id is not None:
            ids.add(bookmark_id)
        start.getparent().remove(start)
    for end in list(root.iter(qn("w:bookmarkEnd"))):
        if get_attr(end, "id") in ids:
            end.getparent().remove(end)
    return bool(ids)


def extract_template_mapping(
    template: str | Path | Package,
    profile: TitleProfile | str | None = None,
    output_path: str | Path | None = None,
    log_enabled: bool = True,
) -> TemplateMapping:
    if profile is None or isinstance(profile, str):
        profile = resolve_title_profile(profile)
    source = "<memory>" if isinstance(template, Package) else str(template)
    started = perf_counter()
    log_state = RunLogState(template_path=source, command="map")
    try:
        package = template if isinstance(template, Package) else Package.from_path(template)
        heading_styles = resolve_heading_styles(package.styles_root())
        log_state.heading_style_sources = dict(heading_styles.sources)
        mapping = extract_mapping(package.body(), heading_styles, profile=profile, source=source)
        log_state.section_count = len(mapping.sections)
        log_state.block_count = len(mapping.blocks)
        if output_path is not None:
            mapping.export_json(output_path)
    except Exception as exc:
        log_state.error = str(exc)
        log_state.elapsed_sec = perf_counter() - started
        if log_enabled:
            write_log(log_state)
        raise
    log_state.elapsed_sec = perf_counter() - started
    if log_enabled:
        write_log(log_state)
    return mapping


def _final_sect_pr_index(children: list[etree._Element]) -> int:
    for index in range(len(children) - 1, -1, -1):
        if is_w(children[index], "sectPr"):
            return index
    return len(children)


def _section_break_carrier(nodes: list[etree._Element]) -> etree._Element | None:
    """Empty paragraph keeping the last section break inside the removed span."""
    for node in reversed(nodes):
        if not (is_w(node, "p") and has_section_break(node)):
            continue
        p_pr = deepcopy(find_child(node, "pPr"))
        for local in _CARRIER_PPR_STRIP:
            for child in p_pr.findall(qn(f"w:{local}")):
                p_pr.remove(child)
        paragraph = make("w:p")
        paragraph.append(p_pr)
        return paragraph
    return None


def _insert_before(
    body: etree._Element,
    anchor: etree._Element | None,
    node: etree._Element,
) -> None:
    if anchor is None:
        body.append(node)
    else:
        anchor.addprevious(node)


def _coerce_chapters(chapters: Iterable[Chapter | dict]) -> list[Chapter]:
    return [item if isinstance(item, Chapter) else Chapter.from_dict(item) for item in chapters]


def _coerce_references(references: Iterable[Reference | dict] | None) -> list[Reference]:
    if references is None:
        return []
    return [item if isinstance(item, Reference) else Reference.from_dict(item) for item in references]
