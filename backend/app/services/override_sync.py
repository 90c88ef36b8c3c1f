"""
Keeps the administrator override snapshot for one team current.

Fetches on start and whenever the admin-locks broadcast event fires; bursts
of invalidations collapse into one fetch per coalescing window. A failed
fetch keeps the previous snapshot, and a snapshot is only republished when
its content changed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from app.config import settings
from app.pipeline.gating import EMPTY_SNAPSHOT, OverrideSnapshot
from app.services.snapshot_store import InvalidationChannel, Unsubscribe
from app.services.xfactory_client import XFactoryClient
from app.utils.debounce import Debouncer
from app.utils.result import Err, Ok, Result, capture

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[OverrideSnapshot], None]


class OverrideSyncController:
    def __init__(
        self,
        client: XFactoryClient,
        team_id: Optional[int],
        channel: Optional[InvalidationChannel] = None,
        *,
        refresh_window: Optional[float] = None,
        event_name: Optional[str] = None,
    ):
        self.client = client
        self.team_id = team_id
        self.channel = channel
        self.event_name = event_name or settings.ADMIN_LOCKS_EVENT
        window = settings.OVERRIDE_REFRESH_WINDOW_SECONDS if refresh_window is None else refresh_window
        self._debouncer = Debouncer(self.refresh, window)
        self._snapshot: OverrideSnapshot = EMPTY_SNAPSHOT
        self._listeners: List[SnapshotListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._closed = False
        self.version = 0
        self.fetch_count = 0
        self.last_success_at: Optional[datetime] = None

    @property
    def snapshot(self) -> OverrideSnapshot:
        return self._snapshot

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    async def start(self) -> None:
        """Initial fetch (overrides and idea card) plus subscription to the broadcast event."""
        if self.channel is not None and self._unsubscribe is None:
            self._unsubscribe = await self.channel.subscribe(self.event_name, self.request_refresh)
        await self.refresh_idea_artifact()
        await self.refresh()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Late fetch results after this point are discarded."""
        self._closed = True
        self._debouncer.cancel()
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None

    def request_refresh(self) -> None:
        """Coalesced refresh; safe to call in bursts."""
        self._debouncer.trigger()

    async def flush(self) -> None:
        await self._debouncer.flush()

    async def refresh(self) -> Result:
        team_id = self.team_id
        if not team_id or self._closed:
            return Ok(self._snapshot)
        self.fetch_count += 1
        result = await capture(
            self.client.get_team_roadmap(team_id),
            label="Admin override fetch",
            team_id=team_id,
        )
        if self._closed:
            logger.info("Discarding override fetch for closed controller", extra={"team_id": team_id})
            return Ok(self._snapshot)
        if isinstance(result, Err):
            # Stale but available: keep whatever we had.
            return result
        fetched = OverrideSnapshot.from_roadmap(
            result.value, idea_artifact_complete=self._snapshot.idea_artifact_complete
        )
        self.last_success_at = datetime.utcnow()
        self._publish(fetched)
        return Ok(self._snapshot)

    async def refresh_idea_artifact(self) -> bool:
        """A failed check counts as no concept card."""
        team_id = self.team_id
        if not team_id or self._closed:
            return self._snapshot.idea_artifact_complete
        result = await capture(
            self.client.concept_card_exists(team_id),
            label="Concept card check",
            team_id=team_id,
        )
        if self._closed:
            return self._snapshot.idea_artifact_complete
        exists = result.unwrap_or(False) is True
        self._publish(self._snapshot.with_idea_artifact(exists))
        return exists

    def _publish(self, snapshot: OverrideSnapshot) -> None:
        if snapshot == self._snapshot:
            return
        self._snapshot = snapshot
        self.version += 1
        logger.info(
            "Override snapshot updated",
            extra={"team_id": self.team_id, "status": f"v{self.version}"},
        )
        for listener in list(self._listeners):
            listener(snapshot)
