from __future__ import annotations

import unittest
from typing import Any, Dict, List, Tuple

from errors import StoreError, ValidationError
from location import (
    NOT_SET,
    NOT_SET_PLACEHOLDER,
    DisplayMode,
    Location,
    apply_location,
    location_summary,
    normalize_location,
    resolve_location,
)


class RecordingStore:
    def __init__(self, fail_with: str = "") -> None:
        self.fail_with = fail_with
        self.updates: List[Tuple[str, Dict[str, Any], str]] = []

    def update(self, table: str, patch: Dict[str, Any], match_id: str) -> Dict[str, Any]:
        self.updates.append((table, patch, match_id))
        if self.fail_with:
            raise StoreError(self.fail_with)
        return {"id": match_id, "location_code": None, **patch}


class NormalizeLocationTests(unittest.TestCase):
    def test_trims_uppercases_and_drops_empty_section(self) -> None:
        location = normalize_location(" 3 ", "a-3", "")
        self.assertEqual(location.as_patch(), {"aisle": "3", "shelf": "A-3", "section": None})

    def test_whitespace_section_is_absent_and_other_text_is_trimmed(self) -> None:
        self.assertIsNone(normalize_location("1", "B-2", "   \t").section)
        self.assertEqual(normalize_location("1", "B-2", "  Infantil ").section, "Infantil")

    def test_missing_aisle(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            normalize_location("   ", "A-3", "")
        self.assertEqual(ctx.exception.message, "aisle required")
        self.assertEqual(ctx.exception.field, "aisle")

    def test_blank_shelf_reports_required_not_format(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            normalize_location("2", "  ", "")
        self.assertEqual(ctx.exception.message, "shelf required")

    def test_shelf_format(self) -> None:
        for accepted in ["a-1", " z-0042 ", "C-10"]:
            self.assertIsNotNone(normalize_location("1", accepted).shelf)
        for rejected in ["A3", "AA-3", "A-", "-3", "A-3b", "1-3", "A - 3", "A-３", "a-٣"]:
            with self.assertRaises(ValidationError) as ctx:
                normalize_location("1", rejected)
            self.assertEqual(ctx.exception.message, "shelf format invalid")

    def test_aisle_is_kept_as_text(self) -> None:
        self.assertEqual(normalize_location("007", "A-1").aisle, "007")
        self.assertEqual(normalize_location("Living", "A-1").aisle, "Living")


class ApplyLocationTests(unittest.TestCase):
    def test_submits_a_single_canonical_update(self) -> None:
        store = RecordingStore()
        location = apply_location(store, "book-1", " 3 ", "a-3", "")
        self.assertEqual(
            store.updates,
            [("books", {"aisle": "3", "shelf": "A-3", "section": None}, "book-1")],
        )
        self.assertEqual(location, Location(aisle="3", shelf="A-3"))

    def test_validation_failure_never_reaches_the_store(self) -> None:
        store = RecordingStore()
        with self.assertRaises(ValidationError):
            apply_location(store, "book-1", "", "A-3", "")
        self.assertEqual(store.updates, [])

    def test_store_failure_carries_message(self) -> None:
        store = RecordingStore(fail_with="permission denied for table books")
        with self.assertRaises(StoreError) as ctx:
            apply_location(store, "book-1", "3", "A-3", "")
        self.assertEqual(ctx.exception.message, "permission denied for table books")


class ResolveLocationTests(unittest.TestCase):
    def test_location_code_wins(self) -> None:
        location = Location(aisle="5", shelf="B-2", section="Poesía", location_code="LIV-07")
        self.assertEqual(resolve_location(location, DisplayMode.VERBOSE), "LIV-07")
        self.assertEqual(resolve_location(location, DisplayMode.COMPACT), "LIV-07")

    def test_structured_verbose_and_compact(self) -> None:
        location = Location.from_row({"aisle": 5, "shelf": "B-2", "location_code": None})
        self.assertEqual(resolve_location(location), "Estante B-2 · Pasillo 5")
        self.assertEqual(resolve_location(location, DisplayMode.COMPACT), "P5 · B-2")

    def test_section_only_in_verbose_mode(self) -> None:
        location = Location(aisle="5", shelf="B-2", section="Poesía")
        self.assertEqual(resolve_location(location), "Estante B-2 · Pasillo 5 · Poesía")
        self.assertEqual(resolve_location(location, DisplayMode.COMPACT), "P5 · B-2")

    def test_partial_location_is_not_set(self) -> None:
        self.assertIs(resolve_location(Location(aisle="5")), NOT_SET)
        self.assertIs(resolve_location(Location(shelf="B-2"), DisplayMode.COMPACT), NOT_SET)
        self.assertIs(resolve_location(Location(section="Poesía")), NOT_SET)

    def test_aisle_zero_counts_as_present(self) -> None:
        location = Location.from_row({"aisle": 0, "shelf": "A-1"})
        self.assertEqual(resolve_location(location, DisplayMode.COMPACT), "P0 · A-1")

    def test_blank_stored_values_are_absent(self) -> None:
        location = Location.from_row({"aisle": "3", "shelf": "A-1", "location_code": "  "})
        self.assertIsNone(location.location_code)
        self.assertEqual(resolve_location(location, DisplayMode.COMPACT), "P3 · A-1")

    def test_summary_states(self) -> None:
        self.assertEqual(
            location_summary(Location()),
            {"state": "not_set", "text": None, "placeholder": NOT_SET_PLACEHOLDER},
        )
        self.assertEqual(location_summary(Location(location_code="X"))["state"], "code")
        summary = location_summary(Location(aisle="1", shelf="A-1"), DisplayMode.COMPACT)
        self.assertEqual(summary, {"state": "structured", "text": "P1 · A-1", "placeholder": None})


if __name__ == "__main__":
    unittest.main()
