import unittest

from tests.builders import make_body, p
from thesis_assembler.fields import (
    BookmarkAllocator,
    ParagraphBuilder,
    apply_run_style,
    set_paragraph_center,
    strip_bookmarks,
)
from thesis_assembler.ooxml import field_char_types, find_child, get_attr, local_name, qn
from thesis_assembler.style_config import RunStyle

STYLE = RunStyle("SimSun", "Times New Roman", "24")


def _paragraph(xml: str):
    return make_body(xml)[0]


class BookmarkAllocatorTests(unittest.TestCase):
    def test_reserve_existing_and_suffix(self) -> None:
        body = make_body(
            '<w:p><w:bookmarkStart w:id="60000" w:name="_Ref_1"/><w:bookmarkEnd w:id="60000"/></w:p>'
        )
        allocator = BookmarkAllocator()
        allocator.reserve_existing(body)
        self.assertTrue(allocator.is_taken("_Ref_1"))
        self.assertEqual(allocator.allocate("_Ref_1"), ("_Ref_1_2", 60001))
        self.assertEqual(allocator.allocate("_Ref_1"), ("_Ref_1_3", 60002))

    def test_numbered_names_follow_ids(self) -> None:
        allocator = BookmarkAllocator(start=10)
        self.assertEqual(allocator.allocate_numbered("_Fig_"), ("_Fig_10", 10))
        self.assertEqual(allocator.allocate_numbered("_Tbl_"), ("_Tbl_11", 11))
        self.assertEqual(allocator.names, {"_Fig_10", "_Tbl_11"})

    def test_release(self) -> None:
        allocator = BookmarkAllocator()
        name, _ = allocator.allocate("_Ref_3")
        allocator.release(name)
        self.assertFalse(allocator.is_taken("_Ref_3"))
        self.assertEqual(allocator.allocate("_Ref_3")[0], "_Ref_3")

    def test_ids_never_repeat(self) -> None:
        allocator = BookmarkAllocator()
        ids = [allocator.next_id() for _ in range(50)]
        self.assertEqual(len(set(ids)), 50)


class ParagraphBuilderTests(unittest.TestCase):
    def test_field_uses_five_runs(self) -> None:
        paragraph = ParagraphBuilder().text("见").field("REF _Ref_1 \\r \\h", "1").build(STYLE)
        runs = paragraph.findall(qn("w:r"))
        self.assertEqual(len(runs), 6)
        self.assertEqual(field_char_types(paragraph), ["begin", "separate", "end"])
        instr = paragraph.find(f".//{qn('w:instrText')}")
        self.assertEqual(instr.text, " REF _Ref_1 \\r \\h ")
        self.assertEqual(runs[4].find(qn("w:t")).text, "1")

    def test_run_style_overrides_every_run(self) -> None:
        paragraph = ParagraphBuilder().text("a").field("SEQ Figure").build(STYLE)
        for run in paragraph.findall(qn("w:r")):
            fonts = run.find(qn("w:rPr")).find(qn("w:rFonts"))
            self.assertEqual(get_attr(fonts, "eastAsia"), "SimSun")
            self.assertEqual(get_attr(fonts, "hAnsi"), "Times New Roman")
            self.assertEqual(get_attr(run.find(qn("w:rPr")).find(qn("w:szCs")), "val"), "24")

    def test_from_prototype_strips_section_break_and_revisions(self) -> None:
        prototype = _paragraph(
            "<w:p><w:pPr><w:pStyle w:val=\"Body\"/><w:spacing w:line=\"360\"/>"
            "<w:outlineLvl w:val=\"9\"/><w:sectPr/><w:pPrChange/></w:pPr>"
            "<w:r><w:rPr><w:b/><w:rPrChange/></w:rPr><w:t>x</w:t></w:r></w:p>"
        )
        paragraph = ParagraphBuilder.from_prototype(prototype).center().text("新内容").build()
        p_pr = paragraph.find(qn("w:pPr"))
        self.assertEqual([local_name(child) for child in p_pr], ["pStyle", "spacing", "jc", "outlineLvl"])
        r_pr = paragraph.find(qn("w:r")).find(qn("w:rPr"))
        self.assertEqual([local_name(child) for child in r_pr], ["b"])
        self.assertIsNotNone(prototype.find(qn("w:pPr")).find(qn("w:sectPr")))

    def test_style_sets_paragraph_style(self) -> None:
        paragraph = ParagraphBuilder().style("H2").text("标题").build()
        self.assertEqual(get_attr(paragraph.find(qn("w:pPr")).find(qn("w:pStyle")), "val"), "H2")

    def test_bookmarks_wrap_fragments(self) -> None:
        paragraph = (
            ParagraphBuilder()
            .bookmark_start("_Ref_1", 7)
            .text("[1] Entry")
            .bookmark_end(7)
            .build()
        )
        self.assertEqual(
            [local_name(child) for child in paragraph],
            ["bookmarkStart", "r", "bookmarkEnd"],
        )
        self.assertEqual(get_attr(paragraph[0], "name"), "_Ref_1")
        self.assertEqual(get_attr(paragraph[2], "id"), "7")

    def test_empty_text_is_skipped(self) -> None:
        builder = ParagraphBuilder().text("")
        self.assertEqual(builder.fragments, [])


class RunStyleHelperTests(unittest.TestCase):
    def test_apply_run_style_removes_theme_fonts(self) -> None:
        run = _paragraph(
            '<w:p><w:r><w:rPr><w:rFonts w:asciiTheme="minorHAnsi" w:eastAsiaTheme="minorEastAsia"/>'
            '<w:b/><w:color w:val="FF0000"/></w:rPr><w:t>x</w:t></w:r></w:p>'
        ).find(qn("w:r"))
        apply_run_style(run, RunStyle("SimHei", "Arial", "32"))
        r_pr = run.find(qn("w:rPr"))
        fonts = find_child(r_pr, "rFonts")
        self.assertIsNone(fonts.get(qn("w:asciiTheme")))
        self.assertIsNone(fonts.get(qn("w:eastAsiaTheme")))
        self.assertEqual(get_attr(fonts, "eastAsia"), "SimHei")
        self.assertEqual(get_attr(fonts, "ascii"), "Arial")
        self.assertEqual([local_name(child) for child in r_pr], ["rFonts", "b", "color", "sz", "szCs"])

    def test_apply_run_style_creates_rpr(self) -> None:
        run = _paragraph(p("x")).find(qn("w:r"))
        apply_run_style(run, STYLE)
        self.assertEqual(local_name(run[0]), "rPr")

    def test_strip_bookmarks(self) -> None:
        paragraph = _paragraph(
            '<w:p><w:bookmarkStart w:id="1" w:name="a"/><w:r><w:t>x</w:t></w:r>'
            '<w:bookmarkEnd w:id="1"/></w:p>'
        )
        strip_bookmarks(paragraph)
        self.assertEqual([local_name(child) for child in paragraph], ["r"])

    def test_set_paragraph_center(self) -> None:
        paragraph = _paragraph(p("x"))
        set_paragraph_center(paragraph)
        jc = paragraph.find(qn("w:pPr")).find(qn("w:jc"))
        self.assertEqual(get_attr(jc, "val"), "center")


if __name__ == "__main__":
    unittest.main()
