from __future__ import annotations

import json
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from docx import Document
from docx.enum.style import WD_STYLE_TYPE
from docx.enum.text import WD_ALIGN_PARAGRAPH
from lxml import etree

ROOT = Path(__file__).resolve().parents[1]
FIXTURES_DIR = ROOT / "samples"

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


def _save(doc: Document, name: str) -> Path:
    path = FIXTURES_DIR / name
    doc.save(path)
    return path


def _patch_zip(path: Path, updates: dict[str, bytes | None]) -> None:
    """Rewrite parts in place; a ``None`` payload drops the part."""
    temp_path = path.with_suffix(".tmp")
    with ZipFile(path, "r") as src, ZipFile(temp_path, "w", ZIP_DEFLATED) as dst:
        for info in src.infolist():
            if info.filename in updates and updates[info.filename] is None:
                continue
            content = updates.get(info.filename) or src.read(info.filename)
            dst.writestr(info, content)
    temp_path.replace(path)


def _field(paragraph, instruction: str, cached: str = "1") -> None:
    for xml in (
        '<w:r xmlns:w="{ns}"><w:fldChar w:fldCharType="begin"/></w:r>',
        '<w:r xmlns:w="{ns}"><w:instrText xml:space="preserve"> {instr} </w:instrText></w:r>',
        '<w:r xmlns:w="{ns}"><w:fldChar w:fldCharType="separate"/></w:r>',
        '<w:r xmlns:w="{ns}"><w:t>{cached}</w:t></w:r>',
        '<w:r xmlns:w="{ns}"><w:fldChar w:fldCharType="end"/></w:r>',
    ):
        paragraph._p.append(etree.fromstring(xml.format(ns=W_NS, instr=instruction, cached=cached)))


def _ensure_style(doc: Document, name: str) -> None:
    if name not in {style.name for style in doc.styles}:
        doc.styles.add_style(name, WD_STYLE_TYPE.PARAGRAPH)


def _build_template(with_references: bool = True) -> Document:
    doc = Document()
    _ensure_style(doc, "Caption")
    header = doc.sections[0].header.paragraphs[0]
    header.alignment = WD_ALIGN_PARAGRAPH.CENTER
    _field(header, 'STYLEREF "heading 1" \\s', "第1章 占位")

    doc.add_paragraph("摘要").alignment = WD_ALIGN_PARAGRAPH.CENTER
    doc.add_paragraph("本文以模板驱动的方式生成学位论文正文，这里是中文摘要的示例内容。")
    doc.add_paragraph("ABSTRACT").alignment = WD_ALIGN_PARAGRAPH.CENTER
    doc.add_paragraph("This paragraph stands in for the English abstract of the thesis.")
    doc.add_paragraph("目录").alignment = WD_ALIGN_PARAGRAPH.CENTER
    toc = doc.add_paragraph()
    _field(toc, 'TOC \\o "1-3" \\h \\z \\u', "第1章 占位")

    for index in (1, 2):
        doc.add_paragraph(f"第{index}章 占位", style="Heading 1")
        doc.add_paragraph(f"这里是模板第{index}章的示例正文段落，生成时会被替换。")
        doc.add_paragraph(f"{index}.1 占位小节", style="Heading 2")
        if index == 1:
            caption = doc.add_paragraph("图 ", style="Caption")
            _field(caption, "SEQ Figure \\* ARABIC \\s 1")
            caption.add_run(" 示例图")
            table = doc.add_table(rows=2, cols=3)
            table.style = "Table Grid"
            for col, text in enumerate(("参数", "取值", "说明")):
                table.cell(0, col).text = text

    doc.add_paragraph("致谢", style="Heading 1")
    doc.add_paragraph("感谢导师与同学在论文写作过程中给予的帮助。")
    if with_references:
        doc.add_paragraph("参考文献", style="Heading 1")
        doc.add_paragraph("[1] 示例作者. 示例文献[J]. 示例期刊, 2001.")
    return doc


def _make_template() -> Path:
    return _save(_build_template(), "THESIS_TEMPLATE.docx")


def _make_template_without_references() -> Path:
    return _save(_build_template(with_references=False), "THESIS_TEMPLATE_NO_REFERENCES.docx")


def _without_target(xml: bytes, attr: str, value: str) -> bytes:
    root = etree.fromstring(xml)
    for child in list(root):
        if child.get(attr) == value:
            root.remove(child)
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def _make_template_without_settings() -> Path:
    path = _save(_build_template(), "THESIS_TEMPLATE_NO_SETTINGS.docx")
    with ZipFile(path, "r") as archive:
        rels = archive.read("word/_rels/document.xml.rels")
        content_types = archive.read("[Content_Types].xml")
    _patch_zip(
        path,
        {
            "word/settings.xml": None,
            "word/_rels/document.xml.rels": _without_target(rels, "Target", "settings.xml"),
            "[Content_Types].xml": _without_target(content_types, "PartName", "/word/settings.xml"),
        },
    )
    return path


def _make_invalid() -> Path:
    path = FIXTURES_DIR / "THESIS_INVALID.docx"
    path.write_text("invalid docx content", encoding="utf-8")
    return path


def _write_json(name: str, data: object) -> Path:
    path = FIXTURES_DIR / name
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def _make_outline() -> Path:
    return _write_json(
        "outline.json",
        [
            {
                "level": 1,
                "title": "第1章 绪论",
                "content": "本章介绍研究背景 [[REF:1]]。\n系统整体结构如下。[[FIG:系统架构图]]",
                "subsections": [
                    {
                        "level": 2,
                        "title": "1.1 研究现状",
                        "content": "已有方法参见 [[REF:B. Writer, Survey of Document Assembly, 2019]]。",
                    }
                ],
            },
            {
                "level": 1,
                "title": "第2章 方法",
                "content": "主要参数见下表。[[TBL:实验参数]]\n[[EQ:E = mc^2]]\n温度保持在 25[[SYM:°C]] 左右。",
            },
        ],
    )


def _make_references() -> Path:
    return _write_json(
        "references.json",
        [{"id": 1, "description": "A. Author, Paper Title, 2020"}],
    )


def _make_styles() -> Path:
    return _write_json(
        "styles.json",
        {
            "heading1": {"fontFamilyCI": "黑体", "fontSizeName": "三号"},
            "body": {"font_east_asia": "宋体", "font_size_name": "小四"},
            "caption": {"font_size_name": "五号"},
            "numbering_separator": "-",
            "header": {"headerReferenceStyle": '"heading 1"'},
        },
    )


def main() -> None:
    FIXTURES_DIR.mkdir(parents=True, exist_ok=True)
    _make_template()
    _make_template_without_references()
    _make_template_without_settings()
    _make_invalid()
    _make_outline()
    _make_references()
    _make_styles()
    print(f"samples generated in {FIXTURES_DIR}")


if __name__ == "__main__":
    main()
