"""
One user's questionnaire run: schema load, resume, edits with autosave,
navigation and submission. All state transitions go through the engine;
persistence is dispatched and never awaited on the navigation path.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from app.exceptions import SchemaLoadError
from app.questionnaire import engine
from app.questionnaire.engine import ProgressPointer, QuestionnaireState
from app.questionnaire.schema import QuestionnaireSchema
from app.services.progress_persistence import ProgressPersistenceAdapter, ProgressSnapshot, utcnow
from app.services.xfactory_client import UpstreamError, XFactoryClient

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[Dict[str, Dict[str, str]]], None]


async def load_schema(client: XFactoryClient) -> QuestionnaireSchema:
    try:
        payload = await client.get_questionnaire_structure()
    except (UpstreamError, httpx.HTTPError) as e:
        logger.error(f"Failed to load questionnaire: {e}")
        raise SchemaLoadError() from e
    return QuestionnaireSchema.from_payload(payload)


class QuestionnaireSession:
    def __init__(
        self,
        client: XFactoryClient,
        persistence: ProgressPersistenceAdapter,
        *,
        on_complete: Optional[CompleteCallback] = None,
    ):
        self.client = client
        self.persistence = persistence
        self.on_complete = on_complete
        self.schema: Optional[QuestionnaireSchema] = None
        self.state: QuestionnaireState = engine.start_state()
        self.last_submission: Optional[Dict[str, Dict[str, str]]] = None

    @property
    def is_open(self) -> bool:
        return self.schema is not None

    async def open(self) -> QuestionnaireState:
        """Load the schema (fatal on failure), then resume remote > local > fresh."""
        if self.schema is None:
            self.schema = await load_schema(self.client)
        saved = await self.persistence.load()
        self.state = self._state_from(saved)
        logger.info(
            "Questionnaire opened",
            extra={
                "user_id": self.persistence.user_id,
                "team_id": self.persistence.team_id,
                "section": self.state.pointer.section,
                "status": "resumed" if saved else "fresh",
            },
        )
        return self.state

    def _state_from(self, saved: Optional[ProgressSnapshot]) -> QuestionnaireState:
        if saved is None:
            return engine.start_state()
        pointer = engine.clamp_pointer(self.schema, saved.current_section, saved.current_question)
        return QuestionnaireState(
            pointer=pointer,
            answers=dict(saved.answers),
            furthest_section=self._furthest_from(saved, pointer),
            submitted=saved.completed_at is not None,
        )

    def _furthest_from(self, saved: ProgressSnapshot, pointer: ProgressPointer) -> int:
        """High-water mark survives a reload; never behind the pointer nor past the last section."""
        furthest = saved.furthest_section or pointer.section
        return max(pointer.section, min(furthest, self.schema.section_count))

    def _require_schema(self) -> QuestionnaireSchema:
        if self.schema is None:
            raise SchemaLoadError("Questionnaire has not been loaded")
        return self.schema

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            answers=dict(self.state.answers),
            current_section=self.state.pointer.section,
            current_question=self.state.pointer.question,
            furthest_section=self.state.furthest_section,
            updated_at=utcnow(),
        )

    def view(self) -> Dict[str, Any]:
        return engine.describe(self._require_schema(), self.state)

    def edit_answer(self, question_id: str, text: str) -> QuestionnaireState:
        """In-memory update first, then remote autosave and local snapshot in the background."""
        schema = self._require_schema()
        self.state = engine.set_answer(schema, self.state, question_id, text)
        location = schema.locate(question_id)
        snapshot = self.snapshot()
        self.persistence.dispatch(
            self.persistence.autosave_remote(location["key"], question_id, text, snapshot)
        )
        self.persistence.dispatch(self.persistence.save_local(snapshot))
        return self.state

    async def next(self) -> QuestionnaireState:
        """Blocked on a blank required question (raises, nothing persisted)."""
        schema = self._require_schema()
        step = engine.advance(schema, self.state)
        if step.submit:
            await self.submit()
            return self.state
        self.state = step.state
        self._persist_position()
        return self.state

    def previous(self) -> QuestionnaireState:
        before = self.state
        self.state = engine.retreat(self._require_schema(), self.state)
        if self.state is not before:
            self._persist_position()
        return self.state

    def jump(self, section: int) -> QuestionnaireState:
        before = self.state
        self.state = engine.jump(self._require_schema(), self.state, section)
        if self.state is not before:
            self._persist_position()
        return self.state

    def _persist_position(self) -> None:
        self.persistence.dispatch(self.persistence.save_local(self.snapshot()))

    async def submit(self) -> Dict[str, Dict[str, str]]:
        """
        Package answers by section and hand them to the consumer. Resubmitting
        with unchanged answers yields the same payload.
        """
        schema = self._require_schema()
        grouped = engine.group_answers(schema, self.state.answers)
        await self.persistence.submit(grouped)
        self.state = QuestionnaireState(
            pointer=self.state.pointer,
            answers=self.state.answers,
            furthest_section=self.state.furthest_section,
            submitted=True,
        )
        self.last_submission = grouped
        self.persistence.dispatch(self.persistence.mark_completed(self.snapshot()))
        logger.info(
            "Questionnaire submitted",
            extra={"user_id": self.persistence.user_id, "team_id": self.persistence.team_id, "status": "submitted"},
        )
        if self.on_complete is not None:
            self.on_complete(grouped)
        return grouped

    @property
    def pointer(self) -> ProgressPointer:
        return self.state.pointer
