"""
Station gating: the single place station status is computed.

Status is never stored. It is recomputed from the completion set, the
current station, the administrator lock/unlock maps and the idea-card
signal, and the computation has no side effects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.pipeline.stations import (
    PIPELINE_ORDER,
    STATIONS,
    pipeline_edges,
    pipeline_nodes,
    section_key_of,
)

logger = logging.getLogger(__name__)

IDEA_STATION_ID = 1


class StationStatus(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    ACTIVE = "active"
    COMPLETED = "completed"


def normalize_override_map(raw: Any) -> Dict[str, bool]:
    """
    Validate an admin_locks / admin_unlocks payload at the boundary.
    Anything that is not a str -> bool entry is dropped; a non-mapping payload
    becomes an empty map (no override), which gates fail-closed.
    """
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("Ignoring malformed override map of type %s", type(raw).__name__)
        return {}
    return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, bool)}


@dataclass(frozen=True)
class OverrideSnapshot:
    """Administrator overrides plus the derived idea-card signal, as one immutable input."""
    locks: Dict[str, bool] = field(default_factory=dict)
    unlocks: Dict[str, bool] = field(default_factory=dict)
    idea_artifact_complete: bool = False

    @classmethod
    def from_roadmap(cls, payload: Any, idea_artifact_complete: bool = False) -> "OverrideSnapshot":
        data = payload if isinstance(payload, Mapping) else {}
        return cls(
            locks=normalize_override_map(data.get("admin_locks")),
            unlocks=normalize_override_map(data.get("admin_unlocks")),
            idea_artifact_complete=idea_artifact_complete,
        )

    def with_idea_artifact(self, complete: bool) -> "OverrideSnapshot":
        return OverrideSnapshot(locks=self.locks, unlocks=self.unlocks, idea_artifact_complete=complete)


EMPTY_SNAPSHOT = OverrideSnapshot()


def is_explicitly_open(key: str, locks: Optional[Mapping[str, bool]], unlocks: Optional[Mapping[str, bool]]) -> bool:
    """Open only on an explicit unlock; an explicit lock always wins."""
    explicit_unlock = (unlocks or {}).get(key) is True
    explicit_lock = (locks or {}).get(key) is True
    return explicit_unlock and not explicit_lock


def status_of(
    station_id: int,
    completed: Iterable[int],
    current: Optional[int],
    locks: Optional[Mapping[str, bool]] = None,
    unlocks: Optional[Mapping[str, bool]] = None,
    idea_artifact_complete: bool = False,
) -> StationStatus:
    """
    Evaluated in precedence order, first match wins:
      1. completed set membership -> COMPLETED (no override demotes it)
      2. idea station with an existing concept card -> COMPLETED
      3. current station -> ACTIVE if explicitly open, else LOCKED
      4. any other station -> UNLOCKED if explicitly open, else LOCKED
    """
    key = section_key_of(station_id)
    done = completed if isinstance(completed, (set, frozenset)) else set(completed or ())
    if station_id in done:
        return StationStatus.COMPLETED
    if station_id == IDEA_STATION_ID and idea_artifact_complete is True:
        return StationStatus.COMPLETED
    is_open = is_explicitly_open(key, locks, unlocks)
    if station_id == current:
        return StationStatus.ACTIVE if is_open else StationStatus.LOCKED
    return StationStatus.UNLOCKED if is_open else StationStatus.LOCKED


def compute_statuses(
    completed: Iterable[int],
    current: Optional[int],
    snapshot: OverrideSnapshot = EMPTY_SNAPSHOT,
) -> Dict[int, StationStatus]:
    """Status of every station, keyed by id, in pipeline order."""
    done = set(completed or ())
    return {
        sid: status_of(
            sid,
            done,
            current,
            snapshot.locks,
            snapshot.unlocks,
            snapshot.idea_artifact_complete,
        )
        for sid in PIPELINE_ORDER
    }


def is_enterable(status: StationStatus) -> bool:
    return status != StationStatus.LOCKED


def is_review(status: StationStatus) -> bool:
    """Entering a completed station reviews its artifact instead of resuming work."""
    return status == StationStatus.COMPLETED


def build_board(
    completed: Iterable[int],
    current: Optional[int],
    snapshot: OverrideSnapshot = EMPTY_SNAPSHOT,
) -> Dict[str, Any]:
    """Statuses joined with the station catalogue and the rendered topology."""
    statuses = compute_statuses(completed, current, snapshot)
    stations: List[Dict[str, Any]] = []
    for station in STATIONS:
        status = statuses[station.id]
        stations.append({
            "id": station.id,
            "section_key": station.section_key,
            "title": station.title,
            "description": station.description,
            "estimated_time": station.estimated_time,
            "output": station.output,
            "status": status.value,
        })
    nodes = [{**node, "status": statuses[node["station_id"]].value} for node in pipeline_nodes()]
    edges = [
        {
            "id": f"e{source}-{target}",
            "source": source,
            "target": target,
            "flowing": statuses[source_station] == StationStatus.COMPLETED,
        }
        for source, target, source_station in pipeline_edges()
    ]
    return {
        "current_station": current,
        "stations": stations,
        "nodes": nodes,
        "edges": edges,
    }