from __future__ import annotations

from pathlib import Path
from xml.sax.saxutils import escape

from docx import Document
from docx.enum.style import WD_STYLE_TYPE
from docx.oxml.ns import qn as docx_qn
from lxml import etree

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
M_NS = "http://schemas.openxmlformats.org/officeDocument/2006/math"
_DOCUMENT_OPEN = f'<w:document xmlns:w="{W_NS}" xmlns:m="{M_NS}"><w:body>'
_DOCUMENT_CLOSE = "</w:body></w:document>"


def make_body(*fragments: str) -> etree._Element:
    root = etree.fromstring((_DOCUMENT_OPEN + "".join(fragments) + _DOCUMENT_CLOSE).encode("utf-8"))
    return root[0]


def p(text: str = "", style: str | None = None, extra: str = "", sect: bool = False) -> str:
    p_pr = ""
    if style or sect:
        p_pr = "<w:pPr>"
        if style:
            p_pr += f'<w:pStyle w:val="{style}"/>'
        if sect:
            p_pr += "<w:sectPr/>"
        p_pr += "</w:pPr>"
    run = f'<w:r><w:t xml:space="preserve">{escape(text)}</w:t></w:r>' if text else ""
    return f"<w:p>{p_pr}{run}{extra}</w:p>"


def field_runs(instruction: str, cached: str = "1", begin: bool = True, end: bool = True) -> str:
    out = ""
    if begin:
        out += '<w:r><w:fldChar w:fldCharType="begin"/></w:r>'
        out += f'<w:r><w:instrText xml:space="preserve"> {escape(instruction)} </w:instrText></w:r>'
        out += '<w:r><w:fldChar w:fldCharType="separate"/></w:r>'
    out += f"<w:r><w:t>{escape(cached)}</w:t></w:r>"
    if end:
        out += '<w:r><w:fldChar w:fldCharType="end"/></w:r>'
    return out


def toc_field(entries: list[str], instruction: str = 'TOC \\o "1-3" \\h \\z \\u') -> list[str]:
    """Paragraphs of a multi-paragraph TOC field; each entry nests a PAGEREF."""
    paragraphs = []
    for index, entry in enumerate(entries):
        extra = ""
        if index == 0:
            extra += '<w:r><w:fldChar w:fldCharType="begin"/></w:r>'
            extra += f'<w:r><w:instrText xml:space="preserve"> {escape(instruction)} </w:instrText></w:r>'
            extra += '<w:r><w:fldChar w:fldCharType="separate"/></w:r>'
        extra += f'<w:r><w:t>{escape(entry)}</w:t></w:r>'
        extra += field_runs(f"PAGEREF _Toc{index} \\h", str(index + 1))
        if index == len(entries) - 1:
            extra += '<w:r><w:fldChar w:fldCharType="end"/></w:r>'
        paragraphs.append(f"<w:p>{extra}</w:p>")
    return paragraphs


def table(rows: int = 2, cols: int = 2, text: str = "cell") -> str:
    cells = "".join(f"<w:tc>{p(text)}</w:tc>" for _ in range(cols))
    return "<w:tbl><w:tblPr/>" + "".join(f"<w:tr>{cells}</w:tr>" for _ in range(rows)) + "</w:tbl>"


def inject_field(paragraph, instruction: str, cached: str = "1") -> None:
    """Append a complete five-run field to a python-docx paragraph."""
    for xml in (
        f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="begin"/></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:instrText xml:space="preserve"> {escape(instruction)} </w:instrText></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="separate"/></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:t>{escape(cached)}</w:t></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="end"/></w:r>',
    ):
        paragraph._p.append(etree.fromstring(xml))


def ensure_paragraph_style(document, name: str) -> None:
    existing = {style.name for style in document.styles}
    if name not in existing:
        document.styles.add_style(name, WD_STYLE_TYPE.PARAGRAPH)


def build_thesis_template(
    path: Path,
    body_headings: tuple[str, ...] = ("第1章 占位",),
    old_references: tuple[str, ...] = ("[1] Old reference entry, 2001",),
    with_caption: bool = True,
    with_table: bool = True,
    with_references: bool = True,
) -> Path:
    """Front matter, a TOC, placeholder chapters and back matter."""
    document = Document()
    ensure_paragraph_style(document, "Caption")
    document.add_paragraph("摘要")
    document.add_paragraph("这里是中文摘要的示例内容，用于模板。")
    document.add_paragraph("ABSTRACT")
    document.add_paragraph("This is the English abstract of the template.")
    document.add_paragraph("目录")
    toc_entry = document.add_paragraph("第1章 占位")
    _wrap_toc(toc_entry)

    for index, heading in enumerate(body_headings, start=1):
        document.add_paragraph(heading, style="Heading 1")
        document.add_paragraph(f"这里是模板正文第{index}章的示例段落内容。")
        document.add_paragraph(f"{index}.1 小节", style="Heading 2")
        if with_caption and index == 1:
            caption = document.add_paragraph("图 ", style="Caption")
            inject_field(caption, "SEQ Figure \\* ARABIC \\s 1")
            caption.add_run(" 示例图")
        if with_table and index == 1:
            grid = document.add_table(rows=2, cols=2)
            grid.cell(0, 0).text = "旧表头"
            grid.cell(1, 1).text = "旧数据"

    document.add_paragraph("致谢", style="Heading 1")
    document.add_paragraph("感谢导师和同学们在论文写作过程中的帮助。")
    if with_references:
        document.add_paragraph("参考文献", style="Heading 1")
        for entry in old_references:
            document.add_paragraph(entry)
    document.save(str(path))
    return path


def _wrap_toc(paragraph) -> None:
    runs = [
        f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="begin"/></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:instrText xml:space="preserve"> TOC \\o "1-3" \\h \\z \\u </w:instrText></w:r>',
        f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="separate"/></w:r>',
    ]
    first_run = paragraph._p.find(docx_qn("w:r"))
    for xml in runs:
        first_run.addprevious(etree.fromstring(xml))
    inject_field(paragraph, "PAGEREF _Toc1 \\h", "1")
    paragraph._p.append(etree.fromstring(f'<w:r xmlns:w="{W_NS}"><w:fldChar w:fldCharType="end"/></w:r>'))


def body_of(data: bytes) -> etree._Element:
    from thesis_assembler.package import Package

    return Package.from_bytes(data).body()


PKG_NS = "http://schemas.microsoft.com/office/2006/xmlPackage"
_RELS_XML = (
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/'
    'relationships/officeDocument" Target="word/document.xml"/></Relationships>'
)
_STYLES_XML = (
    f'<w:styles xmlns:w="{W_NS}">'
    '<w:style w:type="paragraph" w:default="1" w:styleId="Normal"><w:name w:val="Normal"/></w:style>'
    '<w:style w:type="paragraph" w:styleId="H1"><w:name w:val="heading 1"/>'
    '<w:basedOn w:val="Normal"/><w:pPr><w:outlineLvl w:val="0"/></w:pPr></w:style>'
    '<w:style w:type="paragraph" w:styleId="H2"><w:name w:val="heading 2"/>'
    '<w:basedOn w:val="Normal"/><w:pPr><w:outlineLvl w:val="1"/></w:pPr></w:style>'
    '<w:style w:type="paragraph" w:styleId="H3"><w:name w:val="heading 3"/>'
    '<w:basedOn w:val="Normal"/><w:pPr><w:outlineLvl w:val="2"/></w:pPr></w:style>'
    "</w:styles>"
)
_SETTINGS_XML = f'<w:settings xmlns:w="{W_NS}"><w:zoom w:percent="100"/><w:compat/><w:rsids/></w:settings>'


def flat_package(*fragments: str, settings: bool = True, body: bool = True) -> bytes:
    """Flat OPC document with H1/H2/H3 heading styles."""
    inner = "<w:body>" + "".join(fragments) + "<w:sectPr/></w:body>" if body else ""
    document = f'<w:document xmlns:w="{W_NS}" xmlns:m="{M_NS}">{inner}</w:document>'
    parts = [
        ("/_rels/.rels", "application/vnd.openxmlformats-package.relationships+xml", _RELS_XML),
        (
            "/word/document.xml",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml",
            document,
        ),
        (
            "/word/styles.xml",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml",
            _STYLES_XML,
        ),
    ]
    if settings:
        parts.append(
            (
                "/word/settings.xml",
                "application/vnd.openxmlformats-officedocument.wordprocessingml.settings+xml",
                _SETTINGS_XML,
            )
        )
    xml = f'<?xml version="1.0" standalone="yes"?><pkg:package xmlns:pkg="{PKG_NS}">'
    for name, content_type, payload in parts:
        xml += (
            f'<pkg:part pkg:name="{name}" pkg:contentType="{content_type}">'
            f"<pkg:xmlData>{payload}</pkg:xmlData></pkg:part>"
        )
    xml += (
        '<pkg:part pkg:name="/word/media/image1.png" pkg:contentType="image/png" '
        'pkg:compression="store"><pkg:binaryData>iVBORw0KGgo=</pkg:binaryData></pkg:part>'
    )
    xml += "</pkg:package>"
    return xml.encode("utf-8")
