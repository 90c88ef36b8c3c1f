"""
Tests for the override snapshot controller, the station board on top of it
and the administrator override editor.
"""
import asyncio

import pytest

from app.config import settings
from app.exceptions import StationLockedError, ValidationError
from app.pipeline.gating import EMPTY_SNAPSHOT, StationStatus, status_of
from app.services.override_admin import (
    ALL_SECTION_KEYS,
    full_override_maps,
    is_locked,
    save_overrides,
    toggle_lock,
)
from app.services.override_sync import OverrideSyncController
from app.services.station_board import StationBoard
from app.services.xfactory_client import concept_card_path, roadmap_path

TEAM = 5


@pytest.fixture
def controller(xclient, channel):
    return OverrideSyncController(xclient, TEAM, channel, refresh_window=0)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_loads_overrides_and_concept_card(upstream, controller, channel):
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"mvp": True}, "admin_locks": {"legal": True}}
    upstream.concept_cards.add(TEAM)

    await controller.start()

    snapshot = controller.snapshot
    assert snapshot.unlocks == {"mvp": True}
    assert snapshot.locks == {"legal": True}
    assert snapshot.idea_artifact_complete is True
    assert controller.last_success_at is not None
    assert channel.subscriber_count(settings.ADMIN_LOCKS_EVENT) == 1
    await controller.close()
    assert channel.subscriber_count(settings.ADMIN_LOCKS_EVENT) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_snapshot(upstream, controller):
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"mvp": True}}
    await controller.start()
    version = controller.version

    upstream.fail("GET", roadmap_path(TEAM))
    result = await controller.refresh()

    assert not result.ok
    assert controller.version == version
    snapshot = controller.snapshot
    assert snapshot.unlocks == {"mvp": True}
    assert status_of(6, set(), None, snapshot.locks, snapshot.unlocks) == StationStatus.UNLOCKED

    upstream.recover("GET", roadmap_path(TEAM))
    upstream.roadmaps[TEAM] = {"admin_unlocks": {}}
    result = await controller.refresh()
    assert result.ok
    assert controller.snapshot.unlocks == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unchanged_fetch_does_not_republish(upstream, controller):
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"mvp": True}}
    seen = []
    controller.add_listener(seen.append)
    await controller.start()
    version = controller.version

    await controller.refresh()
    await controller.refresh()

    assert controller.version == version
    assert len(seen) == version
    assert controller.fetch_count == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concept_card_failure_fails_closed(upstream, controller):
    upstream.fail("GET", concept_card_path(TEAM))
    assert await controller.refresh_idea_artifact() is False
    assert controller.snapshot.idea_artifact_complete is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_override_payload_is_ignored(upstream, controller):
    upstream.roadmaps[TEAM] = {"admin_locks": "everything", "admin_unlocks": {"mvp": "true", "idea": True}}
    await controller.refresh()
    assert controller.snapshot.locks == {}
    assert controller.snapshot.unlocks == {"idea": True}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_requests_are_coalesced(upstream, xclient, channel):
    controller = OverrideSyncController(xclient, TEAM, channel, refresh_window=0.05)
    for _ in range(10):
        controller.request_refresh()
    await asyncio.sleep(0.2)
    assert controller.fetch_count == 1
    assert upstream.count("GET", roadmap_path(TEAM)) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_broadcast_triggers_refetch(upstream, controller, channel):
    await controller.start()
    assert controller.snapshot.unlocks == {}

    upstream.roadmaps[TEAM] = {"admin_unlocks": {"validation": True}}
    await channel.publish(settings.ADMIN_LOCKS_EVENT)
    await asyncio.sleep(0.05)

    assert controller.snapshot.unlocks == {"validation": True}
    await controller.close()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_finishing_after_close_is_discarded(upstream, gated_xclient, channel):
    client, gate = gated_xclient(roadmap_path(TEAM))
    controller = OverrideSyncController(client, TEAM, channel, refresh_window=0)
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"mvp": True}}
    pending = asyncio.ensure_future(controller.refresh())
    await asyncio.sleep(0.01)

    await controller.close()
    gate.set()
    await asyncio.wait_for(pending, 1.0)

    assert controller.closed
    assert controller.snapshot == EMPTY_SNAPSHOT
    assert controller.version == 0
    await controller.refresh()
    assert upstream.count("GET", roadmap_path(TEAM)) == 1
    await client.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_team_means_no_fetch(upstream, xclient):
    controller = OverrideSyncController(xclient, None, refresh_window=0)
    await controller.start()
    assert controller.snapshot == EMPTY_SNAPSHOT
    assert upstream.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_board_enter_station(upstream, controller):
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"pitch_deck": True}}
    entered = []
    board = StationBoard(controller, on_enter_station=lambda sid, review: entered.append((sid, review)))
    await controller.start()

    assert board.enter_station(4, {1, 2, 3}) is False
    assert board.enter_station(2, {1, 2, 3}) is True
    with pytest.raises(StationLockedError):
        board.enter_station(5, {1, 2, 3})
    assert entered == [(4, False), (2, True)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_board_defaults_current_to_first_incomplete(upstream, controller):
    upstream.roadmaps[TEAM] = {"admin_unlocks": {"pitch_deck": True}}
    board = StationBoard(controller)
    await controller.start()

    data = board.board([1, 2, 3])

    assert data["current_station"] == 4
    assert data["team_id"] == TEAM
    assert data["overrides_version"] == controller.version
    assert board.statuses([1, 2, 3])[4] == StationStatus.ACTIVE


# --- Administrator override editor ---


@pytest.mark.unit
def test_is_locked_defaults_to_locked():
    assert is_locked("mvp", {}, {}) is True
    assert is_locked("mvp", {}, {"mvp": True}) is False
    assert is_locked("mvp", {"mvp": True}, {"mvp": True}) is True


@pytest.mark.unit
def test_toggle_lock_flips_and_clears_opposite():
    locks, unlocks = toggle_lock("mvp", {}, {})
    assert unlocks == {"mvp": True}
    assert "mvp" not in locks

    locks, unlocks = toggle_lock("mvp", locks, unlocks)
    assert locks == {"mvp": True}
    assert "mvp" not in unlocks


@pytest.mark.unit
def test_full_override_maps_cover_every_section():
    locks, unlocks = full_override_maps(["legal"])
    assert set(locks) == set(unlocks) == set(ALL_SECTION_KEYS)
    assert locks["legal"] is True and unlocks["legal"] is False
    assert locks["mvp"] is False and unlocks["mvp"] is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_save_overrides_persists_and_broadcasts(upstream, xclient, channel):
    fired = []
    await channel.subscribe(settings.ADMIN_LOCKS_EVENT, lambda: fired.append(1))

    payload = await save_overrides(xclient, channel, TEAM, ["mvp"])

    assert payload["admin_locks"]["mvp"] is True
    assert payload["admin_unlocks"]["idea"] is True
    assert upstream.puts == [(TEAM, payload)]
    assert fired == [1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_save_overrides_rejects_unknown_keys(upstream, xclient, channel):
    with pytest.raises(ValidationError):
        await save_overrides(xclient, channel, TEAM, ["mvp", "rocket"])
    assert upstream.puts == []
