"""Counters for the snapshot cache, exposed for operational dashboards."""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class CacheStats:
    memory_hits: int = 0
    durable_hits: int = 0
    misses: int = 0
    computations: int = 0
    joined_inflight: int = 0
    invalidations: int = 0
    stale_races: int = 0
    hash_mismatches: int = 0
    durable_errors: int = 0
    evictions: int = 0

    @property
    def hits(self) -> int:
        return self.memory_hits + self.durable_hits

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hits"] = self.hits
        data["hit_rate"] = self.hit_rate
        return data
