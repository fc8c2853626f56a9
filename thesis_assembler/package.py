from __future__ import annotations

import base64
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from zipfile import BadZipFile, ZIP_DEFLATED, ZipFile, ZipInfo

from lxml import etree

from .ooxml import PKG_NS, REL_NS, W_NS, find_child, get_attr, local_name

MAIN_DOCUMENT_PART = "/word/document.xml"
STYLES_PART = "/word/styles.xml"
SETTINGS_PART = "/word/settings.xml"
ROOT_RELS_PART = "/_rels/.rels"
_OFFICE_DOCUMENT_REL = "/officeDocument"
_XML_SUFFIXES = (".xml", ".rels")


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(huge_tree=True, remove_blank_text=False)


class PackageError(ValueError):
    """Structural problem that makes the package unusable."""


@dataclass
class Part:
    name: str
    root: etree._Element | None = None
    data: bytes | None = None
    content_type: str | None = None

    @property
    def is_xml(self) -> bool:
        return self.root is not None


class Package:
    """A document package held as named parts.

    Both the zipped OPC form (``.docx``) and the single-file Flat OPC form
    (``pkg:package``) are accepted; ``to_bytes`` writes the same flavour
    back.
    """

    def __init__(
        self,
        parts: list[Part],
        flat_tree: etree._ElementTree | None = None,
        zip_infos: dict[str, ZipInfo] | None = None,
    ) -> None:
        self._parts = {part.name: part for part in parts}
        self._order = [part.name for part in parts]
        self._flat_tree = flat_tree
        self._zip_infos = zip_infos or {}

    @classmethod
    def from_path(cls, path: str | Path) -> "Package":
        path = Path(path)
        ensure_readable_file(path)
        return cls.from_bytes(path.read_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Package":
        if not data:
            raise PackageError("empty package")
        if data[:2] == b"PK":
            return cls._from_zip(data)
        return cls._from_flat_xml(data)

    @classmethod
    def _from_zip(cls, data: bytes) -> "Package":
        parts: list[Part] = []
        infos: dict[str, ZipInfo] = {}
        try:
            with ZipFile(BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    name = _normalize_part_name(info.filename)
                    raw = archive.read(info.filename)
                    infos[name] = info
                    parts.append(_make_part(name, raw))
        except BadZipFile as exc:
            raise PackageError(f"invalid docx package ({exc})") from exc
        return cls(parts, zip_infos=infos)

    @classmethod
    def _from_flat_xml(cls, data: bytes) -> "Package":
        try:
            root = etree.fromstring(data, parser=_xml_parser())
        except etree.XMLSyntaxError as exc:
            raise PackageError(f"package is neither a zip nor well-formed XML ({exc})") from exc
        if local_name(root) != "package" or etree.QName(root).namespace != PKG_NS:
            raise PackageError("invalid Flat OPC document: root must be pkg:package")
        parts: list[Part] = []
        for part_elem in root.iterchildren(f"{{{PKG_NS}}}part"):
            name = get_attr(part_elem, "name", PKG_NS)
            if not name:
                continue
            content_type = get_attr(part_elem, "contentType", PKG_NS)
            xml_data = find_child(part_elem, "xmlData", PKG_NS)
            if xml_data is not None:
                part_root = next(iter(xml_data.iterchildren(tag=etree.Element)), None)
                parts.append(Part(name=name, root=part_root, content_type=content_type))
                continue
            binary = find_child(part_elem, "binaryData", PKG_NS)
            payload = b""
            if binary is not None and binary.text:
                payload = base64.b64decode("".join(binary.text.split()))
            parts.append(Part(name=name, data=payload, content_type=content_type))
        return cls(parts, flat_tree=root.getroottree())

    @property
    def is_flat(self) -> bool:
        return self._flat_tree is not None

    @property
    def part_names(self) -> list[str]:
        return list(self._order)

    def part(self, name: str) -> Part | None:
        return self._parts.get(_normalize_part_name(name))

    def require_part(self, name: str) -> Part:
        part = self.part(name)
        if part is None or part.root is None:
            raise PackageError(f"missing required part in package: {name}")
        return part

    def main_document_name(self) -> str:
        rels = self.part(ROOT_RELS_PART)
        if rels is not None and rels.root is not None:
            for rel in rels.root.iterchildren(f"{{{REL_NS}}}Relationship"):
                if (rel.get("Type") or "").endswith(_OFFICE_DOCUMENT_REL):
                    target = rel.get("Target")
                    if target:
                        return _normalize_part_name(target)
        return MAIN_DOCUMENT_PART

    def document_root(self) -> etree._Element:
        return self.require_part(self.main_document_name()).root

    def body(self) -> etree._Element:
        body = find_child(self.document_root(), "body", W_NS)
        if body is None:
            raise PackageError("missing w:body in main document part")
        return body

    def styles_root(self) -> etree._Element | None:
        part = self.part(STYLES_PART)
        return part.root if part is not None else None

    def settings_root(self) -> etree._Element | None:
        part = self.part(SETTINGS_PART)
        return part.root if part is not None else None

    def to_bytes(self) -> bytes:
        if self._flat_tree is not None:
            return etree.tostring(
                self._flat_tree,
                xml_declaration=True,
                encoding="UTF-8",
                standalone=True,
            )
        buffer = BytesIO()
        with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
            for name in self._order:
                part = self._parts[name]
                info = self._zip_infos.get(name)
                if info is None:
                    info = ZipInfo(name.lstrip("/"))
                    info.compress_type = ZIP_DEFLATED
                archive.writestr(info, _part_bytes(part))
        return buffer.getvalue()

    def save(self, path: str | Path) -> Path:
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(self.to_bytes())
        return output


def _make_part(name: str, raw: bytes) -> Part:
    if name.lower().endswith(_XML_SUFFIXES):
        try:
            return Part(name=name, root=etree.fromstring(raw, parser=_xml_parser()))
        except etree.XMLSyntaxError:
            return Part(name=name, data=raw)
    return Part(name=name, data=raw)


def _part_bytes(part: Part) -> bytes:
    if part.root is not None:
        return etree.tostring(
            part.root,
            xml_declaration=True,
            encoding="UTF-8",
            standalone=True,
        )
    return part.data or b""


def _normalize_part_name(name: str) -> str:
    cleaned = name.replace("\\", "/")
    if not cleaned.startswith("/"):
        cleaned = "/" + cleaned
    return cleaned


def ensure_readable_file(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(f"template not found: {path}")
    if not path.is_file():
        raise IsADirectoryError(f"template path is not a file: {path}")
    try:
        with path.open("rb"):
            pass
    except PermissionError as exc:
        raise PermissionError(f"template is not readable: {path}") from exc
