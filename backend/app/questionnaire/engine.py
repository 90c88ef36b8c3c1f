"""
Questionnaire progression: a pure state machine over (section, question).

Sections are numbered 1..8, questions are indexed from 0 inside a section.
Every operation takes the schema and a state and returns a new state; the
only hard gate is a required question left blank on forward navigation.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, NamedTuple

from app.exceptions import (
    QuestionnaireSubmitted,
    RequiredQuestionUnanswered,
    SectionNotAccessible,
    UnknownQuestionError,
)
from app.questionnaire.schema import SECTION_KEYS, Question, QuestionnaireSchema


@dataclass(frozen=True)
class ProgressPointer:
    section: int = 1
    question: int = 0


@dataclass(frozen=True)
class QuestionnaireState:
    pointer: ProgressPointer = field(default_factory=ProgressPointer)
    answers: Mapping[str, str] = field(default_factory=dict)
    # Highest section the user has reached; sections up to it count as visited.
    furthest_section: int = 1
    submitted: bool = False


class Advance(NamedTuple):
    state: QuestionnaireState
    submit: bool


def start_state() -> QuestionnaireState:
    return QuestionnaireState()


def is_answered(answers: Mapping[str, str], question_id: str) -> bool:
    answer = answers.get(question_id)
    return isinstance(answer, str) and answer.strip() != ""


def current_question(schema: QuestionnaireSchema, pointer: ProgressPointer) -> Question:
    return schema.section(pointer.section).questions[pointer.question]


def global_question_number(schema: QuestionnaireSchema, pointer: ProgressPointer) -> int:
    before = sum(len(schema.section(n).questions) for n in range(1, pointer.section))
    return before + pointer.question + 1


def progress_percentage(schema: QuestionnaireSchema, pointer: ProgressPointer) -> float:
    total = schema.total_questions
    if total == 0:
        return 0.0
    return global_question_number(schema, pointer) / total * 100


def is_last_question(schema: QuestionnaireSchema, pointer: ProgressPointer) -> bool:
    return (
        pointer.section == schema.section_count
        and pointer.question == len(schema.section(pointer.section).questions) - 1
    )


def clamp_pointer(schema: QuestionnaireSchema, section: Any, question: Any) -> ProgressPointer:
    """Coerce a persisted position into the schema's range; garbage resumes at the start."""
    try:
        section = int(section)
        question = int(question)
    except (TypeError, ValueError):
        return ProgressPointer()
    section = min(max(section, 1), schema.section_count)
    last_index = len(schema.section(section).questions) - 1
    return ProgressPointer(section, min(max(question, 0), last_index))


def can_advance(schema: QuestionnaireSchema, state: QuestionnaireState) -> bool:
    if state.submitted:
        return False
    question = current_question(schema, state.pointer)
    return not question.required or is_answered(state.answers, question.id)


def advance(schema: QuestionnaireSchema, state: QuestionnaireState) -> Advance:
    """
    Next question, else first question of the next section, else submit.
    On the final question the state is returned unchanged with submit=True.
    """
    if state.submitted:
        raise QuestionnaireSubmitted()
    question = current_question(schema, state.pointer)
    if question.required and not is_answered(state.answers, question.id):
        raise RequiredQuestionUnanswered(question.id)

    pointer = state.pointer
    if pointer.question < len(schema.section(pointer.section).questions) - 1:
        return Advance(replace(state, pointer=ProgressPointer(pointer.section, pointer.question + 1)), False)
    if pointer.section < schema.section_count:
        section = pointer.section + 1
        return Advance(
            replace(
                state,
                pointer=ProgressPointer(section, 0),
                furthest_section=max(state.furthest_section, section),
            ),
            False,
        )
    return Advance(state, True)


def retreat(schema: QuestionnaireSchema, state: QuestionnaireState) -> QuestionnaireState:
    """Previous question, else last question of the previous section; no-op at (1, 0)."""
    if state.submitted:
        raise QuestionnaireSubmitted()
    pointer = state.pointer
    if pointer.question > 0:
        return replace(state, pointer=ProgressPointer(pointer.section, pointer.question - 1))
    if pointer.section > 1:
        section = pointer.section - 1
        return replace(state, pointer=ProgressPointer(section, len(schema.section(section).questions) - 1))
    return state


def is_section_complete(schema: QuestionnaireSchema, answers: Mapping[str, str], number: int) -> bool:
    """Every required question answered; independent of where the user currently is."""
    return all(
        is_answered(answers, q.id)
        for q in schema.section(number).questions
        if q.required
    )


def can_jump(schema: QuestionnaireSchema, state: QuestionnaireState, number: int) -> bool:
    if not 1 <= number <= schema.section_count:
        return False
    current = state.pointer.section
    return (
        number == current
        or number < current
        or number <= state.furthest_section
        or is_section_complete(schema, state.answers, number)
    )


def jump(schema: QuestionnaireSchema, state: QuestionnaireState, number: int) -> QuestionnaireState:
    """Random entry to the first question of a section."""
    if state.submitted:
        raise QuestionnaireSubmitted()
    if not can_jump(schema, state, number):
        raise SectionNotAccessible(number, state.pointer.section)
    if number == state.pointer.section:
        return state
    return replace(
        state,
        pointer=ProgressPointer(number, 0),
        furthest_section=max(state.furthest_section, number),
    )


def set_answer(
    schema: QuestionnaireSchema, state: QuestionnaireState, question_id: str, text: str
) -> QuestionnaireState:
    if state.submitted:
        raise QuestionnaireSubmitted()
    if schema.locate(question_id) is None:
        raise UnknownQuestionError(question_id)
    answers = dict(state.answers)
    answers[question_id] = text
    return replace(state, answers=answers)


def group_answers(schema: QuestionnaireSchema, answers: Mapping[str, str]) -> Dict[str, Dict[str, str]]:
    """Answers keyed by section key, in schema order; every section is present."""
    grouped: Dict[str, Dict[str, str]] = {}
    for section in schema.sections:
        grouped[section.key] = {
            q.id: answers[q.id]
            for q in section.questions
            if isinstance(answers.get(q.id), str) and answers[q.id]
        }
    return grouped


def flatten_answers(grouped: Any) -> Dict[str, str]:
    """Inverse of group_answers for a saved payload; non-section keys and non-string values are dropped."""
    answers: Dict[str, str] = {}
    if not isinstance(grouped, Mapping):
        return answers
    for section_key, section_data in grouped.items():
        if section_key not in SECTION_KEYS or not isinstance(section_data, Mapping):
            continue
        for question_id, answer in section_data.items():
            if isinstance(question_id, str) and isinstance(answer, str):
                answers[question_id] = answer
    return answers


def section_overview(schema: QuestionnaireSchema, state: QuestionnaireState) -> List[Dict[str, Any]]:
    return [
        {
            "number": number,
            "key": section.key,
            "title": section.label,
            "active": number == state.pointer.section,
            "complete": is_section_complete(schema, state.answers, number),
            "accessible": can_jump(schema, state, number),
        }
        for number, section in enumerate(schema.sections, start=1)
    ]


def describe(schema: QuestionnaireSchema, state: QuestionnaireState) -> Dict[str, Any]:
    """Read model for one screen of the questionnaire."""
    pointer = state.pointer
    section = schema.section(pointer.section)
    question = current_question(schema, pointer)
    return {
        "current_section": pointer.section,
        "current_question": pointer.question,
        "question_number": global_question_number(schema, pointer),
        "total_questions": schema.total_questions,
        "progress_percentage": round(progress_percentage(schema, pointer), 2),
        "section": {
            "key": section.key,
            "title": section.title,
            "description": section.description,
            "what_to_think_about": section.what_to_think_about,
        },
        "question": question.model_dump(),
        "answer": state.answers.get(question.id, ""),
        "can_continue": can_advance(schema, state),
        "can_go_back": not state.submitted and (pointer.section, pointer.question) != (1, 0),
        "is_last_question": is_last_question(schema, pointer),
        "submitted": state.submitted,
        "sections": section_overview(schema, state),
    }
