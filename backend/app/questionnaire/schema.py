"""
Questionnaire structure as typed models, validated once at the boundary.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from app.exceptions import SchemaLoadError

SECTION_COUNT = 8
SECTION_KEYS: List[str] = [f"section_{n}" for n in range(1, SECTION_COUNT + 1)]

# Display labels for the section progress indicator
SECTION_LABELS: Dict[str, str] = {
    "section_1": "Problem",
    "section_2": "Target Segment",
    "section_3": "Dig Into Problem",
    "section_4": "User Persona",
    "section_5": "Current Solutions",
    "section_6": "Solution",
    "section_7": "Biz Model & Growth",
    "section_8": "Top 3 Assumptions",
}


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    text: str
    type: str = "text"
    required: bool = False


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    description: str = ""
    what_to_think_about: str = ""
    questions: List[Question] = Field(min_length=1)

    @property
    def label(self) -> str:
        return SECTION_LABELS.get(self.key, self.title)


class QuestionnaireSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    sections: List[Section] = Field(min_length=SECTION_COUNT, max_length=SECTION_COUNT)

    @classmethod
    def from_payload(cls, payload: Any) -> "QuestionnaireSchema":
        """Build from the questionnaire-structure response; any defect is a SchemaLoadError."""
        raw_sections = payload.get("sections") if isinstance(payload, dict) else None
        if not isinstance(raw_sections, dict):
            raise SchemaLoadError("Questionnaire structure has no sections")
        missing = [key for key in SECTION_KEYS if key not in raw_sections]
        if missing:
            raise SchemaLoadError(f"Questionnaire structure is missing {', '.join(missing)}")
        try:
            schema = cls(
                sections=[
                    Section(key=key, **_section_fields(raw_sections[key]))
                    for key in SECTION_KEYS
                ]
            )
        except (PydanticValidationError, TypeError) as e:
            raise SchemaLoadError(f"Questionnaire structure is invalid: {e}") from e
        ids = schema.question_ids()
        if len(ids) != len(set(ids)):
            raise SchemaLoadError("Questionnaire structure has duplicate question ids")
        return schema

    def section(self, number: int) -> Section:
        """1-based section lookup."""
        if not 1 <= number <= len(self.sections):
            raise IndexError(f"Section {number} out of range")
        return self.sections[number - 1]

    @property
    def section_count(self) -> int:
        return len(self.sections)

    @property
    def total_questions(self) -> int:
        return sum(len(s.questions) for s in self.sections)

    def question_ids(self) -> List[str]:
        return [q.id for s in self.sections for q in s.questions]

    def locate(self, question_id: str) -> Optional[Dict[str, Any]]:
        """Section number, section key and index of a question id, or None."""
        for number, section in enumerate(self.sections, start=1):
            for index, question in enumerate(section.questions):
                if question.id == question_id:
                    return {"section": number, "key": section.key, "index": index}
        return None


def _section_fields(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise TypeError("section is not an object")
    return {k: v for k, v in raw.items() if k != "key"}
