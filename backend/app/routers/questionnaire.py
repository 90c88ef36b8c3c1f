"""Structured idea questionnaire API."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_current_user_id, get_registry
from app.services.registry import ProgressionRegistry

router = APIRouter(prefix="/questionnaire", tags=["questionnaire"])


class AnswerBody(BaseModel):
    text: str


@router.get("")
async def get_questionnaire(
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    return session.view()


@router.put("/answers/{question_id}")
async def put_answer(
    question_id: str,
    body: AnswerBody,
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    session.edit_answer(question_id, body.text)
    return session.view()


@router.post("/next")
async def next_question(
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    await session.next()
    return session.view()


@router.post("/previous")
async def previous_question(
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    session.previous()
    return session.view()


@router.post("/jump/{section}")
async def jump_to_section(
    section: int,
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    session.jump(section)
    return session.view()


@router.post("/submit")
async def submit_questionnaire(
    team_id: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    registry: ProgressionRegistry = Depends(get_registry),
):
    session = await registry.session(user_id, team_id)
    sections = await session.submit()
    return {"submitted": True, "sections": sections}
