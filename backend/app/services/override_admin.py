"""Administrator side of station overrides: toggle locks and save full maps."""
import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple

from app.config import settings
from app.exceptions import ValidationError
from app.pipeline.stations import STATIONS
from app.services.snapshot_store import InvalidationChannel
from app.services.xfactory_client import XFactoryClient

logger = logging.getLogger(__name__)

ALL_SECTION_KEYS = [s.section_key for s in STATIONS]


def is_locked(key: str, locks: Mapping[str, bool], unlocks: Mapping[str, bool]) -> bool:
    """Default locked; an explicit lock wins over an explicit unlock."""
    if locks.get(key) is True:
        return True
    if unlocks.get(key) is True:
        return False
    return True


def toggle_lock(
    key: str, locks: Mapping[str, bool], unlocks: Mapping[str, bool]
) -> Tuple[Dict[str, bool], Dict[str, bool]]:
    """Flip one section. The flag being set is added; its opposite is cleared."""
    next_locks = dict(locks)
    next_unlocks = dict(unlocks)
    if is_locked(key, locks, unlocks):
        next_unlocks[key] = True
        next_locks.pop(key, None)
    else:
        next_locks[key] = True
        next_unlocks.pop(key, None)
    return next_locks, next_unlocks


def full_override_maps(
    locked_keys: Iterable[str], keys: Optional[Iterable[str]] = None
) -> Tuple[Dict[str, bool], Dict[str, bool]]:
    """Explicit true/false for every section in both maps."""
    locked = set(locked_keys)
    locks: Dict[str, bool] = {}
    unlocks: Dict[str, bool] = {}
    for key in (keys or ALL_SECTION_KEYS):
        locks[key] = key in locked
        unlocks[key] = key not in locked
    return locks, unlocks


async def save_overrides(
    client: XFactoryClient,
    channel: Optional[InvalidationChannel],
    team_id: int,
    locked_keys: Iterable[str],
) -> Dict[str, Dict[str, bool]]:
    """Persist the lock set for a team and notify every open board."""
    locked_keys = list(locked_keys)
    unknown = set(locked_keys) - set(ALL_SECTION_KEYS)
    if unknown:
        raise ValidationError("Unknown section keys", details={"keys": sorted(unknown)})
    locks, unlocks = full_override_maps(locked_keys)
    payload = {"admin_locks": locks, "admin_unlocks": unlocks}
    await client.update_team_roadmap(team_id, payload)
    logger.info("Saved admin overrides", extra={"team_id": team_id, "status": "saved"})
    if channel is not None:
        await channel.publish(settings.ADMIN_LOCKS_EVENT)
    return payload
