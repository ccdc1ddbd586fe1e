"""
Typed predicate builder for parameterized WHERE clauses.
jobmap/repositories/predicates.py

Each predicate is a SQL fragment with %s placeholders plus its bound values.
User input only ever travels in the params list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple

LIKE_ESCAPE = "!"


def like_pattern(text: str) -> str:
    """Case-folded %substring% pattern with LIKE wildcards escaped."""
    escaped = (
        text.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"


@dataclass(frozen=True)
class Predicate:
    condition: str
    params: Tuple[Any, ...] = ()

    def __post_init__(self):
        placeholders = self.condition.count("%s")
        if placeholders != len(self.params):
            raise ValueError(
                f"Predicate has {placeholders} placeholders but {len(self.params)} params: "
                f"{self.condition}"
            )


@dataclass
class PredicateBuilder:
    predicates: List[Predicate] = field(default_factory=list)

    def add(self, condition: str, *params: Any) -> "PredicateBuilder":
        self.predicates.append(Predicate(condition, tuple(params)))
        return self

    def add_any(self, column: str, values: Sequence[Any]) -> "PredicateBuilder":
        """(column = %s OR column = %s ...); no-op for an empty sequence."""
        if values:
            condition = " OR ".join(f"{column} = %s" for _ in values)
            self.add(f"({condition})", *values)
        return self

    def where_clause(self) -> str:
        if not self.predicates:
            return ""
        return "WHERE " + " AND ".join(p.condition for p in self.predicates)

    def params(self) -> List[Any]:
        return [value for p in self.predicates for value in p.params]

    def __len__(self) -> int:
        return len(self.predicates)
