"""Station board API: gated statuses, station entry and administrator overrides."""
from typing import List, Optional, Set

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.deps import get_current_user_id, get_registry
from app.exceptions import NotFoundError, ValidationError
from app.pipeline.stations import UnknownStationError, get_station
from app.services.override_admin import save_overrides
from app.services.registry import ProgressionRegistry

router = APIRouter(tags=["stations"])


def _parse_completed(raw: Optional[str]) -> Set[int]:
    if not raw:
        return set()
    try:
        ids = {int(part) for part in raw.split(",") if part.strip()}
    except ValueError:
        raise ValidationError("completed must be a comma-separated list of station ids")
    for sid in ids:
        _require_station(sid)
    return ids


def _require_station(station_id: int) -> None:
    try:
        get_station(station_id)
    except UnknownStationError:
        raise NotFoundError("Station", str(station_id))


class EnterBody(BaseModel):
    completed: List[int] = []
    current: Optional[int] = None


class OverridesBody(BaseModel):
    locked: List[str] = []


@router.get("/teams/{team_id}/stations")
async def get_stations(
    team_id: int,
    completed: Optional[str] = Query(None, description="Comma-separated completed station ids"),
    current: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    """Status of every station plus the rendered pipeline."""
    done = _parse_completed(completed)
    if current is not None:
        _require_station(current)
    board = await registry.board(team_id)
    return board.board(done, current)


@router.post("/teams/{team_id}/stations/{station_id}/enter")
async def enter_station(
    team_id: int,
    station_id: int,
    body: EnterBody,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    """Enter a non-locked station; completed stations open in review mode."""
    _require_station(station_id)
    for sid in body.completed:
        _require_station(sid)
    board = await registry.board(team_id)
    review_mode = board.enter_station(station_id, set(body.completed), body.current)
    return {"station_id": station_id, "review_mode": review_mode}


@router.post("/teams/{team_id}/overrides/refresh", status_code=202)
async def refresh_overrides(
    team_id: int,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    board = await registry.board(team_id)
    board.controller.request_refresh()
    return {"message": "Refresh scheduled", "overrides_version": board.controller.version}


@router.put("/teams/{team_id}/overrides")
async def put_overrides(
    team_id: int,
    body: OverridesBody,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    """Administrator save: every section gets an explicit lock/unlock flag."""
    return await save_overrides(registry.client, registry.channel, team_id, body.locked)
