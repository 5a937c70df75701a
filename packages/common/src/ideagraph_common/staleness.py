"""Stale async result guard.

An asynchronous operation captures a token for the subject it was issued
for. When its result arrives, the token is compared with the live subject;
a mismatch means the caller moved on and the result must be discarded.

Example:
    >>> guard = StaleGuard()
    >>> token = guard.issue("paper-1")
    >>> guard.issue("paper-2")          # user switched papers
    >>> guard.is_current(token)
    False
"""

from dataclasses import dataclass
from typing import Hashable, Optional


@dataclass(frozen=True)
class SubjectToken:
    """Identity of a subject at the time an operation was issued."""

    subject: Hashable
    generation: int


class StaleGuard:
    """Tracks the live subject and validates tokens against it.

    The generation counter advances only when the subject changes (or is
    cleared), so repeated requests for the same subject stay valid.
    """

    def __init__(self) -> None:
        self._subject: Optional[Hashable] = None
        self._generation = 0

    @property
    def current(self) -> Optional[Hashable]:
        """The live subject, or None when nothing is focused."""
        return self._subject

    def issue(self, subject: Hashable) -> SubjectToken:
        """Make `subject` live and return a token for it."""
        if subject != self._subject:
            self._subject = subject
            self._generation += 1
        return SubjectToken(subject=subject, generation=self._generation)

    def clear(self) -> None:
        """Drop the live subject; every outstanding token becomes stale."""
        self._subject = None
        self._generation += 1

    def is_current(self, token: SubjectToken) -> bool:
        """Whether a result carrying `token` may still be applied."""
        return token.subject == self._subject and token.generation == self._generation
