"""
Per-unit memoization of loadout generation.
"""

import hashlib
import logging
import threading

from ..config import EngineConfig
from .generator import generate_valid_loadouts
from .models import GenerationResult, UnitWargear

logger = logging.getLogger("codex-engine.wargear")


def unit_fingerprint(unit: UnitWargear) -> str:
    """SHA-256 over everything generation reads from a unit.

    Covers the default-loadout text, option text, roster and item catalog,
    so an edit to any of them produces a new key.
    """
    digest = hashlib.sha256()
    digest.update(unit.default_loadout.encode("utf-8"))
    for option in sorted(unit.options, key=lambda o: o.line):
        digest.update(f"\x00{option.line}\x00{option.description}".encode("utf-8"))
    digest.update(unit.model_dump_json(include={"unit_composition", "weapons", "wargear_abilities"}).encode("utf-8"))
    return digest.hexdigest()


class LoadoutCache:
    """Thread-safe cache of GenerationResult keyed by (unit id, fingerprint).

    Generation is a pure function of the unit, so concurrent misses for the
    same key may both generate; the first stored result wins and both
    callers get equal values.
    """

    def __init__(self, config: EngineConfig | None = None, max_entries: int = 1024) -> None:
        self.config = config or EngineConfig()
        self.max_entries = max_entries
        self._entries: dict[tuple[str, str], GenerationResult] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, unit: UnitWargear) -> GenerationResult:
        """Return the cached generation for ``unit``, generating it on a miss."""
        key = (unit.datasheet_id, unit_fingerprint(unit))
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self.hits += 1
                return cached
            self.misses += 1

        result = generate_valid_loadouts(unit, config=self.config)

        with self._lock:
            if len(self._entries) >= self.max_entries and key not in self._entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug(f"Evicted loadout cache entry for {oldest[0]}")
            return self._entries.setdefault(key, result)

    def invalidate(self, datasheet_id: str) -> int:
        """Drop every entry for a unit. Returns how many were dropped."""
        with self._lock:
            stale = [key for key in self._entries if key[0] == datasheet_id]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
