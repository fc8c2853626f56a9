import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from thesis_assembler.outline import (
    Chapter,
    Reference,
    ReferenceRegistry,
    load_outline,
    load_references,
    strip_reference_numbering,
)


class ChapterTests(unittest.TestCase):
    def test_from_dict_nested_levels(self) -> None:
        chapter = Chapter.from_dict(
            {
                "title": "第1章 绪论",
                "content": "正文",
                "subsections": [{"title": "1.1 背景", "subsections": [{"title": "1.1.1 现状"}]}],
            }
        )
        self.assertEqual([item.level for item in chapter.walk()], [1, 2, 3])
        self.assertEqual(chapter.subsections[0].content, "")
        self.assertEqual(chapter.to_dict()["subsections"][0]["title"], "1.1 背景")

    def test_from_dict_errors(self) -> None:
        with self.assertRaises(ValueError):
            Chapter.from_dict({"title": "  "})
        with self.assertRaises(ValueError):
            Chapter.from_dict({"title": "x", "level": "two"})
        with self.assertRaises(ValueError):
            Chapter.from_dict({"title": "x", "level": 0})
        with self.assertRaises(ValueError):
            Chapter.from_dict({"title": "x", "subsections": "nope"})
        with self.assertRaises(ValueError):
            Chapter.from_dict(["x"])

    def test_id_is_kept_as_string(self) -> None:
        self.assertEqual(Chapter.from_dict({"title": "x", "id": 3}).id, "3")


class ReferenceTests(unittest.TestCase):
    def test_display_text_strips_manual_numbering(self) -> None:
        self.assertEqual(Reference(2, "[7] B. Writer, Book, 2019").display_text(), "[2] B. Writer, Book, 2019")
        self.assertEqual(Reference(1, "A. Author, Paper Title, 2020").display_text(), "[1] A. Author, Paper Title, 2020")
        self.assertEqual(Reference(4, "x").bookmark_name, "_Ref_4")

    def test_strip_reference_numbering_variants(self) -> None:
        for text in ("[12] Entry", "12. Entry", "12、Entry", "(12) Entry", "Entry"):
            self.assertEqual(strip_reference_numbering(text), "Entry", text)
        self.assertEqual(strip_reference_numbering("2020 Survey"), "2020 Survey")

    def test_from_dict_errors(self) -> None:
        with self.assertRaises(ValueError):
            Reference.from_dict({"id": "a", "description": "x"})
        with self.assertRaises(ValueError):
            Reference.from_dict({"id": 1, "description": " "})
        self.assertEqual(Reference.from_dict({"id": "3", "description": "x"}).id, 3)


class LoaderTests(unittest.TestCase):
    def test_load_outline_list_and_object(self) -> None:
        with TemporaryDirectory() as tmpdir:
            plain = Path(tmpdir) / "outline.json"
            plain.write_text(json.dumps([{"title": "第1章"}]), encoding="utf-8")
            wrapped = Path(tmpdir) / "wrapped.json"
            wrapped.write_text(json.dumps({"chapters": [{"title": "A"}, {"title": "B"}]}), encoding="utf-8")
            self.assertEqual(len(load_outline(plain)), 1)
            self.assertEqual([c.title for c in load_outline(wrapped)], ["A", "B"])

    def test_load_outline_rejects_scalar(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "outline.json"
            path.write_text("42", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_outline(path)

    def test_load_references_duplicate_ids(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "refs.json"
            path.write_text(
                json.dumps([{"id": 1, "description": "a"}, {"id": 1, "description": "b"}]),
                encoding="utf-8",
            )
            with self.assertRaises(ValueError):
                load_references(path)
            path.write_text(json.dumps({"references": [{"id": 2, "description": "b"}]}), encoding="utf-8")
            self.assertEqual(load_references(path)[0].id, 2)


class ReferenceRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = ReferenceRegistry([Reference(1, "A. Author, Paper Title, 2020")])

    def test_numeric_ids_are_trusted(self) -> None:
        self.assertEqual(self.registry.resolve("1"), (1, True))
        self.assertEqual(self.registry.resolve(" 9 "), (9, False))
        self.assertEqual(self.registry.synthesized, [])

    def test_description_matches_existing(self) -> None:
        self.assertEqual(self.registry.resolve("a. author, paper  title"), (1, True))
        self.assertEqual(self.registry.synthesized, [])

    def test_unknown_description_is_synthesized(self) -> None:
        ref_id, known = self.registry.resolve("C. Other, Thesis, 2018")
        self.assertEqual((ref_id, known), (2, True))
        self.assertEqual([ref.id for ref in self.registry.references], [1, 2])
        self.assertEqual(self.registry.synthesized[0].description, "C. Other, Thesis, 2018")
        self.assertEqual(self.registry.resolve("C. Other, Thesis, 2018"), (2, True))
        self.assertEqual(len(self.registry.synthesized), 1)

    def test_next_id_on_empty_registry(self) -> None:
        self.assertEqual(ReferenceRegistry().next_id(), 1)


if __name__ == "__main__":
    unittest.main()
