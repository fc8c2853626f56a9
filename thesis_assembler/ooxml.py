from __future__ import annotations

import re

from lxml import etree

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
M_NS = "http://schemas.openxmlformats.org/officeDocument/2006/math"
V_NS = "urn:schemas-microsoft-com:vml"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_NS = "http://schemas.microsoft.com/office/2006/xmlPackage"
XML_NS = "http://www.w3.org/XML/1998/namespace"
REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"

NS = {
    "w": W_NS,
    "m": M_NS,
    "v": V_NS,
    "r": R_NS,
    "pkg": PKG_NS,
}

_SEQ_PATTERN = re.compile(r"\bSEQ\b")
_WHITESPACE = re.compile(r"\s+")

# CT_PPr / CT_RPr child order; consumers reject out-of-order children.
PPR_ORDER = (
    "pStyle", "keepNext", "keepLines", "pageBreakBefore", "framePr",
    "widowControl", "numPr", "suppressLineNumbers", "pBdr", "shd", "tabs",
    "suppressAutoHyphens", "kinsoku", "wordWrap", "overflowPunct",
    "topLinePunct", "autoSpaceDE", "autoSpaceDN", "bidi", "adjustRightInd",
    "snapToGrid", "spacing", "ind", "contextualSpacing", "mirrorIndents",
    "suppressOverlap", "jc", "textDirection", "textAlignment",
    "textboxTightWrap", "outlineLvl", "divId", "cnfStyle", "rPr", "sectPr",
    "pPrChange",
)
RPR_ORDER = (
    "rStyle", "rFonts", "b", "bCs", "i", "iCs", "caps", "smallCaps",
    "strike", "dstrike", "outline", "shadow", "emboss", "imprint", "noProof",
    "snapToGrid", "vanish", "webHidden", "color", "spacing", "w", "kern",
    "position", "sz", "szCs", "highlight", "u", "effect", "bdr", "shd",
    "fitText", "vertAlign", "rtl", "cs", "em", "lang", "eastAsianLayout",
    "specVanish", "oMath", "rPrChange",
)


def qn(tag: str) -> str:
    prefix, local = tag.split(":", 1)
    return f"{{{NS[prefix]}}}{local}"


def local_name(elem: etree._Element) -> str:
    tag = elem.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


def is_w(elem: etree._Element, local: str) -> bool:
    return isinstance(elem.tag, str) and elem.tag == f"{{{W_NS}}}{local}"


def find_child(
    elem: etree._Element | None,
    local: str,
    ns: str = W_NS,
) -> etree._Element | None:
    if elem is None:
        return None
    found = elem.find(f"{{{ns}}}{local}")
    if found is not None:
        return found
    for child in elem:
        if local_name(child) == local and etree.QName(child).namespace == ns:
            return child
    return None


def get_attr(elem: etree._Element | None, local: str, ns: str = W_NS) -> str | None:
    if elem is None:
        return None
    value = elem.get(f"{{{ns}}}{local}")
    if value is not None:
        return value
    value = elem.get(local)
    if value is not None:
        return value
    return elem.get(f"w:{local}")


def set_attr(elem: etree._Element, local: str, value: str, ns: str = W_NS) -> None:
    elem.set(f"{{{ns}}}{local}", value)


def make(tag: str, **attrs: str) -> etree._Element:
    elem = etree.Element(qn(tag))
    for key, value in attrs.items():
        set_attr(elem, key, value)
    return elem


def insert_ordered(
    parent: etree._Element,
    child: etree._Element,
    order: tuple[str, ...],
) -> etree._Element:
    name = local_name(child)
    if name not in order:
        parent.append(child)
        return child
    rank = order.index(name)
    for index, existing in enumerate(parent):
        existing_name = local_name(existing)
        if existing_name in order and order.index(existing_name) > rank:
            parent.insert(index, child)
            return child
    parent.append(child)
    return child


def ensure_child(
    parent: etree._Element,
    local: str,
    order: tuple[str, ...],
) -> etree._Element:
    existing = find_child(parent, local)
    if existing is not None:
        return existing
    return insert_ordered(parent, make(f"w:{local}"), order)


def normalize_title(text: str | None) -> str:
    return _WHITESPACE.sub(" ", (text or "").replace("　", " ")).strip()


def normalize_for_match(text: str | None) -> str:
    return _WHITESPACE.sub("", (text or "").replace("　", "")).strip()


def paragraph_text(paragraph: etree._Element) -> str:
    return "".join(node.text or "" for node in paragraph.iter(qn("w:t")))


def paragraph_style_id(paragraph: etree._Element) -> str | None:
    p_pr = find_child(paragraph, "pPr")
    return get_attr(find_child(p_pr, "pStyle"), "val")


def instruction_texts(node: etree._Element) -> list[str]:
    out: list[str] = []
    for instr in node.iter(qn("w:instrText")):
        text = _WHITESPACE.sub(" ", instr.text or "").strip()
        if text:
            out.append(text)
    return out


def bookmark_names(node: etree._Element) -> list[str]:
    names: list[str] = []
    for bookmark in node.iter(qn("w:bookmarkStart")):
        name = get_attr(bookmark, "name")
        if name:
            names.append(name)
    return names


def field_char_types(node: etree._Element) -> list[str]:
    out: list[str] = []
    for fld_char in node.iter(qn("w:fldChar")):
        value = get_attr(fld_char, "fldCharType")
        if value:
            out.append(value)
    return out


def has_math(node: etree._Element) -> bool:
    return _has_any(node, (f"{{{M_NS}}}oMath", f"{{{M_NS}}}oMathPara"))


def has_drawing(node: etree._Element) -> bool:
    return _has_any(node, (qn("w:drawing"), qn("w:pict"), f"{{{V_NS}}}shape"))


def has_seq_field(node: etree._Element) -> bool:
    return any(_SEQ_PATTERN.search(text) for text in instruction_texts(node))


def has_section_break(paragraph: etree._Element) -> bool:
    return find_child(find_child(paragraph, "pPr"), "sectPr") is not None


def _has_any(node: etree._Element, tags: tuple[str, ...]) -> bool:
    for tag in tags:
        for _ in node.iter(tag):
            return True
    return False


def body_children(body: etree._Element) -> list[etree._Element]:
    return list(body.iterchildren(tag=etree.Element))
