"""Station board: gating over the live override snapshot, plus station entry."""
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from app.exceptions import StationLockedError
from app.pipeline.gating import (
    StationStatus,
    build_board,
    compute_statuses,
    is_enterable,
    is_review,
    status_of,
)
from app.pipeline.stations import first_incomplete
from app.services.override_sync import OverrideSyncController

logger = logging.getLogger(__name__)

EnterStationCallback = Callable[[int, bool], None]


class StationBoard:
    def __init__(
        self,
        controller: OverrideSyncController,
        on_enter_station: Optional[EnterStationCallback] = None,
    ):
        self.controller = controller
        self.on_enter_station = on_enter_station

    @staticmethod
    def resolve_current(completed: Iterable[int], current: Optional[int]) -> Optional[int]:
        return current if current is not None else first_incomplete(completed)

    def statuses(self, completed: Iterable[int], current: Optional[int] = None) -> Dict[int, StationStatus]:
        completed = set(completed)
        return compute_statuses(completed, self.resolve_current(completed, current), self.controller.snapshot)

    def board(self, completed: Iterable[int], current: Optional[int] = None) -> Dict[str, Any]:
        completed = set(completed)
        data = build_board(completed, self.resolve_current(completed, current), self.controller.snapshot)
        data["team_id"] = self.controller.team_id
        data["overrides_version"] = self.controller.version
        return data

    def enter_station(self, station_id: int, completed: Iterable[int], current: Optional[int] = None) -> bool:
        """Hand a non-locked station to the consumer; returns review mode."""
        completed = set(completed)
        snapshot = self.controller.snapshot
        status = status_of(
            station_id,
            completed,
            self.resolve_current(completed, current),
            snapshot.locks,
            snapshot.unlocks,
            snapshot.idea_artifact_complete,
        )
        if not is_enterable(status):
            raise StationLockedError(station_id)
        review_mode = is_review(status)
        logger.info(
            "Entering station",
            extra={"team_id": self.controller.team_id, "station_id": station_id, "status": status.value},
        )
        if self.on_enter_station is not None:
            self.on_enter_station(station_id, review_mode)
        return review_mode
