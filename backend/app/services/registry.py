"""
Owns the live override controllers (per team) and questionnaire sessions
(per user/team).

Lookups never hold a registry-wide lock across I/O: a new entry is inserted
at once and its upstream start runs as a shared task that later callers for
the same key await. Entries idle for longer than the TTL are evicted, the
least recently used go first once the registry is over capacity, and a
session is dropped as soon as it is submitted.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable, Optional, Set, Tuple

from app.config import settings
from app.services.override_sync import OverrideSyncController
from app.services.progress_persistence import ProgressPersistenceAdapter
from app.services.questionnaire_session import QuestionnaireSession
from app.services.snapshot_store import InvalidationChannel, SnapshotStore
from app.services.station_board import StationBoard
from app.services.xfactory_client import XFactoryClient

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, Optional[int]]


class _Entry:
    """A registry value plus the task that brings it up."""

    __slots__ = ("value", "ready", "last_used")

    def __init__(self, value: Any, ready: "asyncio.Future[Any]", now: float):
        self.value = value
        self.ready = ready
        self.last_used = now


class ProgressionRegistry:
    def __init__(
        self,
        client: XFactoryClient,
        store: SnapshotStore,
        channel: InvalidationChannel,
        *,
        refresh_window: Optional[float] = None,
        idle_ttl: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.store = store
        self.channel = channel
        self.refresh_window = refresh_window
        self.idle_ttl = settings.REGISTRY_IDLE_TTL_SECONDS if idle_ttl is None else idle_ttl
        self.max_entries = settings.REGISTRY_MAX_ENTRIES if max_entries is None else max_entries
        self._clock = clock
        self._boards: "OrderedDict[int, _Entry]" = OrderedDict()
        self._sessions: "OrderedDict[SessionKey, _Entry]" = OrderedDict()
        self._closing: Set[asyncio.Task] = set()

    @property
    def board_count(self) -> int:
        return len(self._boards)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def board(self, team_id: int) -> StationBoard:
        entry = self._boards.get(team_id)
        if entry is None:
            controller = OverrideSyncController(
                self.client, team_id, self.channel, refresh_window=self.refresh_window
            )
            entry = _Entry(StationBoard(controller), asyncio.ensure_future(controller.start()), self._clock())
            self._boards[team_id] = entry
        await self._ready(self._boards, team_id, entry)
        return entry.value

    async def session(self, user_id: str, team_id: Optional[int]) -> QuestionnaireSession:
        key: SessionKey = (user_id, team_id or None)
        entry = self._sessions.get(key)
        if entry is None:
            persistence = ProgressPersistenceAdapter(
                self.client, self.store, user_id=user_id, team_id=team_id or None
            )
            session = QuestionnaireSession(
                self.client,
                persistence,
                on_complete=lambda _grouped: self.discard_session(key, session),
            )
            entry = _Entry(session, asyncio.ensure_future(session.open()), self._clock())
            self._sessions[key] = entry
        await self._ready(self._sessions, key, entry)
        return entry.value

    async def _ready(self, entries: "OrderedDict[Any, _Entry]", key: Hashable, entry: _Entry) -> None:
        entry.last_used = self._clock()
        entries.move_to_end(key)
        self.prune()
        try:
            await asyncio.shield(entry.ready)
        except Exception:
            # Failed start (e.g. schema unavailable): drop it so the next call retries.
            if entries.get(key) is entry:
                del entries[key]
            raise

    def discard_session(self, key: SessionKey, session: QuestionnaireSession) -> None:
        """Drop a finished session; its pending writes still settle in the background."""
        entry = self._sessions.get(key)
        if entry is not None and entry.value is session:
            del self._sessions[key]
            self._release(entry)

    def prune(self) -> int:
        """Evict idle entries, then the least recently used beyond capacity. Starting entries stay."""
        now = self._clock()
        evicted = 0
        for entries in (self._boards, self._sessions):
            for key in list(entries):
                entry = entries[key]
                if entry.ready.done() and now - entry.last_used > self.idle_ttl:
                    del entries[key]
                    self._release(entry)
                    evicted += 1
            for key in list(entries):
                if len(entries) <= self.max_entries:
                    break
                entry = entries[key]
                if entry.ready.done():
                    del entries[key]
                    self._release(entry)
                    evicted += 1
        if evicted:
            logger.info(
                f"Evicted {evicted} registry entries",
                extra={"status": f"boards={len(self._boards)} sessions={len(self._sessions)}"},
            )
        return evicted

    def _release(self, entry: _Entry) -> None:
        value = entry.value
        if isinstance(value, StationBoard):
            self._background(value.controller.close())
        else:
            self._background(value.persistence.drain())

    def _background(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def drain(self) -> None:
        """Wait for evicted entries to finish closing."""
        while self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    async def close(self) -> None:
        entries = list(self._boards.values()) + list(self._sessions.values())
        await asyncio.gather(*(entry.ready for entry in entries), return_exceptions=True)
        for entry in entries:
            self._release(entry)
        self._boards.clear()
        self._sessions.clear()
        await self.drain()
        await self.client.aclose()
