"""
Ingestion State - per-run counters and errors
jobmap/pipelines/ingest_state.py
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

COUNTERS = ("fetched", "normalized", "created", "updated", "failed")


def _empty_counts() -> Dict[str, int]:
    return {name: 0 for name in COUNTERS}


@dataclass
class IngestState:
    """State container for one ingestion run across one or more sources."""

    location: str = "Phoenix, AZ"
    keyword: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    # source name -> counters
    per_source: Dict[str, Dict[str, int]] = field(default_factory=dict)

    summary: Dict[str, Any] = field(default_factory=lambda: {
        "errors": [],
        "started_at": None,
        "completed_at": None,
        "cache_keys_invalidated": 0,
    })

    def counts(self, source: str) -> Dict[str, int]:
        return self.per_source.setdefault(source, _empty_counts())

    def increment(self, source: str, counter: str, amount: int = 1) -> None:
        self.counts(source)[counter] += amount

    def add_error(self, step: str, source: str, error: str) -> None:
        """Add an error to the summary."""
        self.summary["errors"].append({
            "step": step,
            "source": source,
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    def mark_started(self) -> None:
        self.summary["started_at"] = datetime.now(timezone.utc).isoformat()
        for source in self.sources:
            self.counts(source)

    def mark_completed(self) -> None:
        self.summary["completed_at"] = datetime.now(timezone.utc).isoformat()

    @property
    def totals(self) -> Dict[str, int]:
        totals = _empty_counts()
        for counts in self.per_source.values():
            for name in COUNTERS:
                totals[name] += counts[name]
        return totals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "keyword": self.keyword,
            "sources": {name: dict(counts) for name, counts in self.per_source.items()},
            "totals": self.totals,
            **self.summary,
        }
