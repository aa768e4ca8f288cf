from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple


@dataclass(frozen=True)
class Eq:
    column: str
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match.

    ``needle`` is already escaped for LIKE-style matching; each store adds its
    own wildcards around it.
    """

    column: str
    needle: str


class _Group:
    def __init__(self, *clauses: Any):
        if not clauses:
            raise ValueError(f"{type(self).__name__} needs at least one clause.")
        self.clauses: Tuple[Any, ...] = tuple(clauses)

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.clauses == other.clauses  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.clauses))

    def __repr__(self) -> str:
        inner = ", ".join(repr(clause) for clause in self.clauses)
        return f"{type(self).__name__}({inner})"


class Or(_Group):
    pass


class And(_Group):
    pass
