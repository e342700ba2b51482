"""Pure validation of raw user text before it may enter the transcript."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .exceptions import EmptyInputError, InappropriateInputError, TooLongError

DEFAULT_MAX_LEN = 500

ModerationPredicate = Callable[[str], bool]


def denylist_predicate(denylist: Iterable[str]) -> ModerationPredicate:
    """Build a predicate that flags text containing any denylisted term.

    Matching is a case-insensitive substring test against each term exactly
    as written, surrounding spaces included. Blank terms are ignored so an
    empty entry can never flag every message.
    """
    terms = tuple(term.lower() for term in denylist if term.strip())

    def _matches(text: str) -> bool:
        lowered = text.lower()
        return any(term in lowered for term in terms)

    return _matches


class InputValidator:
    """Trim, bound and moderate user text.

    The validator holds only configuration. ``validate`` has no side effects
    and returns the same result for the same input.
    """

    def __init__(
        self,
        max_len: int = DEFAULT_MAX_LEN,
        denylist: Iterable[str] = (),
        is_inappropriate: ModerationPredicate | None = None,
    ) -> None:
        if max_len < 1:
            raise ValueError(f"max_len must be at least 1, got {max_len}.")
        self.max_len = max_len
        self.denylist = tuple(denylist)
        self._denylist_hit = denylist_predicate(self.denylist)
        self._extra_predicate = is_inappropriate

    def validate(self, raw: str) -> str:
        """Return the trimmed text or raise an ``InputValidationError`` subclass."""
        text = raw.strip()
        if not text:
            raise EmptyInputError("Message is empty.")
        if len(text) > self.max_len:
            raise TooLongError(
                f"Message is {len(text)} characters; the limit is {self.max_len}."
            )
        if self._denylist_hit(text) or (
            self._extra_predicate is not None and self._extra_predicate(text)
        ):
            raise InappropriateInputError("Message contains blocked content.")
        return text
