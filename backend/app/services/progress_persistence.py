"""
Best-effort persistence of questionnaire answers and position.

Remote (the structured-idea-input API, scoped to the team or, without a team,
to the authenticated user) is the primary store. A local snapshot per
(user, team-or-none) is the offline / anonymous fallback. Neither write ever
blocks navigation: writes are dispatched as tasks and their failures are
logged and dropped; the next edit or navigation writes again.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Optional, Set

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from app.config import settings
from app.exceptions import SubmitError
from app.questionnaire.engine import flatten_answers
from app.services.snapshot_store import SnapshotStore
from app.services.xfactory_client import UpstreamError, XFactoryClient
from app.utils.result import Err, Ok, Result, capture

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressSnapshot(BaseModel):
    """Stored layout: {answers, currentSection, currentQuestion, furthestSection?, updatedAt, completedAt?}."""
    model_config = ConfigDict(populate_by_name=True)

    answers: Dict[str, str] = Field(default_factory=dict)
    current_section: int = Field(1, alias="currentSection")
    current_question: int = Field(0, alias="currentQuestion")
    furthest_section: Optional[int] = Field(None, alias="furthestSection")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def sort_key(self) -> datetime:
        if self.updated_at is None:
            return _EPOCH
        if self.updated_at.tzinfo is None:
            return self.updated_at.replace(tzinfo=timezone.utc)
        return self.updated_at


def snapshot_key(user_id: str, team_id: Optional[int]) -> str:
    return f"{settings.SNAPSHOT_KEY_PREFIX}:{user_id}:{team_id if team_id else 'none'}"


def remote_snapshot(payload: Optional[Dict[str, Any]]) -> Optional[ProgressSnapshot]:
    """Saved structured input -> snapshot. The pointer rides along under `progress` when present."""
    if not payload:
        return None
    answers = flatten_answers(payload)
    progress = payload.get("progress") if isinstance(payload.get("progress"), dict) else {}
    fields: Dict[str, Any] = {"answers": answers}
    if "current_section" in progress:
        fields["current_section"] = progress.get("current_section")
        fields["current_question"] = progress.get("current_question", 0)
    if progress.get("furthest_section") is not None:
        fields["furthest_section"] = progress["furthest_section"]
    updated_at = progress.get("updated_at") or payload.get("updated_at")
    if updated_at:
        fields["updated_at"] = updated_at
    try:
        return ProgressSnapshot(**fields)
    except PydanticValidationError:
        logger.warning("Discarding malformed remote progress; keeping answers only")
        return ProgressSnapshot(answers=answers)


def resolve_snapshots(
    remote: Optional[ProgressSnapshot], local: Optional[ProgressSnapshot]
) -> Optional[ProgressSnapshot]:
    """Last writer wins by updatedAt; untimestamped loses to timestamped; ties go to remote."""
    if remote is None:
        return local
    if local is None:
        return remote
    return local if local.sort_key > remote.sort_key else remote


class ProgressPersistenceAdapter:
    def __init__(
        self,
        client: XFactoryClient,
        store: SnapshotStore,
        *,
        user_id: str,
        team_id: Optional[int] = None,
    ):
        self.client = client
        self.store = store
        self.user_id = user_id
        self.team_id = team_id
        self._tasks: Set[asyncio.Task] = set()

    @property
    def key(self) -> str:
        return snapshot_key(self.user_id, self.team_id)

    def _log_extra(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "team_id": self.team_id}

    async def load_remote(self) -> Result:
        result = await capture(
            self.client.get_saved_answers(self.team_id, user_id=self.user_id),
            label="Saved answers load",
            **self._log_extra(),
        )
        if isinstance(result, Err):
            return result
        return Ok(remote_snapshot(result.value))

    async def load_local(self) -> Result:
        result = await capture(self.store.load(self.key), label="Local snapshot load", **self._log_extra())
        if isinstance(result, Err) or result.value is None:
            return result
        try:
            return Ok(ProgressSnapshot.model_validate(result.value))
        except PydanticValidationError as e:
            logger.warning("Discarding malformed local snapshot", extra=self._log_extra())
            return Err(e)

    async def load(self) -> Optional[ProgressSnapshot]:
        """Remote and local reads both degrade to 'nothing saved'."""
        remote, local = await asyncio.gather(self.load_remote(), self.load_local())
        return resolve_snapshots(remote.unwrap_or(None), local.unwrap_or(None))

    async def save_local(self, snapshot: ProgressSnapshot) -> Result:
        return await capture(
            self.store.save(self.key, snapshot.to_record()),
            label="Local snapshot write",
            **self._log_extra(),
        )

    def autosave_payload(
        self, section_key: str, question_id: str, answer: str, snapshot: ProgressSnapshot
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            section_key: {question_id: answer},
            "progress": {
                "current_section": snapshot.current_section,
                "current_question": snapshot.current_question,
                "furthest_section": snapshot.furthest_section,
                "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
            },
        }
        if self.team_id:
            payload["team_id"] = self.team_id
        return payload

    async def autosave_remote(
        self, section_key: str, question_id: str, answer: str, snapshot: ProgressSnapshot
    ) -> Result:
        return await capture(
            self.client.save_answers(
                self.autosave_payload(section_key, question_id, answer, snapshot), user_id=self.user_id
            ),
            label="Answer autosave",
            question_id=question_id,
            **self._log_extra(),
        )

    def dispatch(self, awaitable: Awaitable[Result]) -> asyncio.Task:
        """Fire and forget. The Result is intentionally ignored; failures are already logged."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched write to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def submit(self, grouped: Dict[str, Dict[str, str]]) -> Dict[str, Any]:
        """Final save. Unlike autosave this is surfaced: it raises SubmitError."""
        if not self.team_id:
            return {}
        try:
            return await self.client.submit_answers(
                {"team_id": self.team_id, **grouped}, user_id=self.user_id
            )
        except (UpstreamError, httpx.HTTPError) as e:
            logger.error(f"Questionnaire submit failed: {e}", extra=self._log_extra())
            raise SubmitError() from e

    async def mark_completed(self, snapshot: ProgressSnapshot) -> Result:
        """Keep the snapshot, flagged completed, so a resubmission can recover from it."""
        now = utcnow()
        completed = snapshot.model_copy(update={"completed_at": now, "updated_at": now})
        return await self.save_local(completed)
