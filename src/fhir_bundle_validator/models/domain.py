"""Screening domain definitions (question and answer code masters)."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnswerDefinition(BaseModel):
    """An allowed answer for a screening question."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = ""
    display: Optional[str] = None


class QuestionDefinition(BaseModel):
    """A screening question and the answers it accepts."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    display: Optional[str] = None
    multi_value: bool = Field(default=False, alias="multiValue")
    allowed_answers: List[AnswerDefinition] = Field(
        default_factory=list, alias="allowedAnswers"
    )

    @property
    def allowed_codes(self) -> List[str]:
        """Non-empty allowed answer codes, in definition order."""
        return [a.code for a in self.allowed_answers if a.code]


class ScreeningTypeDefinition(BaseModel):
    """A screening type identified by the Observation code."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    display: Optional[str] = None
    questions: List[QuestionDefinition] = Field(default_factory=list)

    def question(self, code: str) -> Optional[QuestionDefinition]:
        """Find a question by its code."""
        return next((q for q in self.questions if q.code == code), None)


class DomainDefinition(BaseModel):
    """Code master for screening Observations."""

    model_config = ConfigDict(populate_by_name=True)

    screening_types: List[ScreeningTypeDefinition] = Field(
        default_factory=list, alias="screeningTypes"
    )

    def screening_type(self, code: str) -> Optional[ScreeningTypeDefinition]:
        """Find a screening type by its code."""
        return next((s for s in self.screening_types if s.code == code), None)
