"""Storage of past analyses.

The analysis core never touches these; the HTTP layer saves each result after
the fact. Every store keeps at most ``capacity`` records and evicts the oldest
insertion first.
"""
from __future__ import annotations

import json
import os
import secrets
import string
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import TypeAdapter

from .logger import get_logger
from .models import AnalysisResult, StoredAnalysis
from .scoring import fallback_result

logger = get_logger(__name__)

DEFAULT_CAPACITY = 50

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_LENGTH = 9

_DEMO_SITES = (
    ("https://example.com", timedelta(hours=2)),
    ("https://testsite.org", timedelta(days=1)),
    ("https://mywebsite.net", timedelta(days=3)),
)

_records_adapter = TypeAdapter(list[StoredAnalysis])


def _new_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def _parse_ts(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AnalysisStore(ABC):
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()

    @abstractmethod
    def _load(self) -> list[StoredAnalysis]:
        """Return all records, oldest insertion first."""

    @abstractmethod
    def _dump(self, records: list[StoredAnalysis]) -> None:
        ...

    def _append(self, records: list[StoredAnalysis], new: list[StoredAnalysis]) -> list[StoredAnalysis]:
        records = records + new
        if len(records) > self.capacity:
            evicted = len(records) - self.capacity
            records = records[evicted:]
            logger.info("Evicted %s oldest stored analyses", evicted)
        return records

    def save(self, url: str, result: AnalysisResult) -> str:
        record = StoredAnalysis(id=_new_id(), url=url, timestamp=result.timestamp, result=result)
        with self._lock:
            self._dump(self._append(self._load(), [record]))
        return record.id

    def save_all_if_empty(self, items: list[tuple[str, AnalysisResult]]) -> list[str]:
        """Save every item in one write, but only if the store holds nothing yet.

        Returns the new ids, or an empty list when the store already had records.
        """
        new = [StoredAnalysis(id=_new_id(), url=url, timestamp=r.timestamp, result=r) for url, r in items]
        with self._lock:
            records = self._load()
            if records:
                return []
            self._dump(self._append(records, new))
        return [r.id for r in new]

    def get(self, analysis_id: str) -> StoredAnalysis | None:
        with self._lock:
            records = self._load()
        return next((r for r in records if r.id == analysis_id), None)

    def list_all(self) -> list[StoredAnalysis]:
        with self._lock:
            return self._load()

    def list_recent(self, limit: int = 10) -> list[StoredAnalysis]:
        with self._lock:
            records = self._load()
        # reversed() first so later insertions win timestamp ties (sort is stable).
        ordered = sorted(reversed(records), key=lambda r: _parse_ts(r.timestamp), reverse=True)
        return ordered[: max(0, limit)]

    def delete(self, analysis_id: str) -> bool:
        with self._lock:
            records = self._load()
            kept = [r for r in records if r.id != analysis_id]
            if len(kept) == len(records):
                return False
            self._dump(kept)
        return True


class InMemoryAnalysisStore(AnalysisStore):
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        super().__init__(capacity)
        self._records: list[StoredAnalysis] = []

    def _load(self) -> list[StoredAnalysis]:
        return list(self._records)

    def _dump(self, records: list[StoredAnalysis]) -> None:
        self._records = list(records)


class JsonFileAnalysisStore(AnalysisStore):
    """All records live in one JSON array in a single file."""

    def __init__(self, path: str | os.PathLike, capacity: int = DEFAULT_CAPACITY):
        super().__init__(capacity)
        self.path = Path(path)

    def _load(self) -> list[StoredAnalysis]:
        if not self.path.exists():
            return []
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return []
        try:
            return _records_adapter.validate_json(raw)
        except ValueError:
            # Keep the bad file for inspection; the next write must not destroy it.
            aside = self.path.with_name(self.path.name + ".corrupt")
            os.replace(self.path, aside)
            logger.exception("Stored analyses at %s are unreadable, moved to %s and starting empty", self.path, aside)
            return []

    def _dump(self, records: list[StoredAnalysis]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json", by_alias=True) for r in records]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)


def seed_demo_data(store: AnalysisStore) -> int:
    """Fill an empty store with a few demo analyses; returns how many were added."""
    now = datetime.now(timezone.utc)
    items = [
        (url, fallback_result(url, timestamp=(now - age).isoformat()))
        for url, age in sorted(_DEMO_SITES, key=lambda site: site[1], reverse=True)
    ]
    return len(store.save_all_if_empty(items))
