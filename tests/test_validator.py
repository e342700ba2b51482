"""Tests for raw input validation."""

from __future__ import annotations

import unittest

from chat_core.exceptions import (
    EmptyInputError,
    InappropriateInputError,
    InputValidationError,
    TooLongError,
)
from chat_core.validator import InputValidator, denylist_predicate


class InputValidatorTests(unittest.TestCase):
    """Validate trimming, bounds and moderation."""

    def test_returns_trimmed_text_unchanged_otherwise(self) -> None:
        validator = InputValidator()
        self.assertEqual(validator.validate("  Hi There!  \n"), "Hi There!")
        self.assertEqual(validator.validate("\tok"), "ok")

    def test_case_punctuation_and_emoji_are_preserved(self) -> None:
        validator = InputValidator()
        raw = "Yay!! That's SO cool 😃✨ ...right?"
        self.assertEqual(validator.validate(raw), raw)

    def test_whitespace_only_is_empty_input(self) -> None:
        validator = InputValidator()
        for raw in ("", "   ", "\n\t  \r\n"):
            with self.subTest(raw=raw):
                with self.assertRaises(EmptyInputError):
                    validator.validate(raw)

    def test_length_limit_applies_after_trim(self) -> None:
        validator = InputValidator()
        self.assertEqual(len(validator.validate("a" * 500)), 500)
        self.assertEqual(validator.validate("  " + "b" * 500 + "  "), "b" * 500)
        with self.assertRaises(TooLongError):
            validator.validate("c" * 501)

    def test_custom_max_len(self) -> None:
        validator = InputValidator(max_len=3)
        self.assertEqual(validator.validate("abc"), "abc")
        with self.assertRaises(TooLongError):
            validator.validate("abcd")

    def test_denylist_is_case_insensitive_substring(self) -> None:
        validator = InputValidator(denylist=["Darn"])
        with self.assertRaises(InappropriateInputError):
            validator.validate("well DARNIT")
        self.assertEqual(validator.validate("dar n"), "dar n")

    def test_denylist_terms_keep_their_spaces(self) -> None:
        validator = InputValidator(denylist=[" ass"])
        self.assertEqual(validator.validate("first class"), "first class")
        with self.assertRaises(InappropriateInputError):
            validator.validate("what an ASS move")

    def test_invalid_max_len_is_rejected(self) -> None:
        for bad in (0, -5):
            with self.subTest(max_len=bad):
                with self.assertRaises(ValueError):
                    InputValidator(max_len=bad)

    def test_blank_denylist_entries_are_ignored(self) -> None:
        validator = InputValidator(denylist=["", "   "])
        self.assertEqual(validator.validate("anything"), "anything")

    def test_pluggable_predicate(self) -> None:
        validator = InputValidator(is_inappropriate=lambda text: text.isdigit())
        with self.assertRaises(InappropriateInputError):
            validator.validate(" 1234 ")
        self.assertEqual(validator.validate("12 apples"), "12 apples")

    def test_errors_share_base_class_and_reason(self) -> None:
        validator = InputValidator(max_len=2, denylist=["x"])
        reasons = []
        for raw in ("", "abc", "x"):
            try:
                validator.validate(raw)
            except InputValidationError as exc:
                reasons.append(exc.reason)
        self.assertEqual(reasons, ["empty_input", "too_long", "inappropriate"])

    def test_validation_is_deterministic(self) -> None:
        validator = InputValidator(denylist=["bad"])
        self.assertEqual(validator.validate(" hello "), validator.validate(" hello "))
        self.assertEqual(validator.denylist, ("bad",))


class DenylistPredicateTests(unittest.TestCase):
    def test_matches_any_term(self) -> None:
        matches = denylist_predicate(["foo", "Bar"])
        self.assertTrue(matches("xxFOOxx"))
        self.assertTrue(matches("a bar"))
        self.assertFalse(matches("baz"))

    def test_matching_is_plain_lowercase(self) -> None:
        matches = denylist_predicate(["ss"])
        self.assertFalse(matches("Straße"))
        self.assertTrue(matches("GLASS"))

    def test_empty_denylist_matches_nothing(self) -> None:
        self.assertFalse(denylist_predicate([])("anything at all"))


if __name__ == "__main__":
    unittest.main()
