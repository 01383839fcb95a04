"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Question payloads accept both the
snake_case column names and the camelCase names used by the admin UI.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import ExamType

OptionLabel = Literal['A', 'B', 'C', 'D']


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    email: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class ProfessionIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class HealthAuthorityIn(BaseModel):
    name: str = Field(min_length=1)
    country: str = Field(min_length=1)
    description: Optional[str] = None


class QuestionIn(BaseModel):
    """A four-option question as authored by an admin."""
    question: str = Field(min_length=1)
    option_a: str = Field(min_length=1, validation_alias=AliasChoices('option_a', 'optionA'))
    option_b: str = Field(min_length=1, validation_alias=AliasChoices('option_b', 'optionB'))
    option_c: str = Field(min_length=1, validation_alias=AliasChoices('option_c', 'optionC'))
    option_d: str = Field(min_length=1, validation_alias=AliasChoices('option_d', 'optionD'))
    correct_answer: OptionLabel = Field(validation_alias=AliasChoices('correct_answer', 'correctAnswer'))
    explanation: Optional[str] = None

    @field_validator('correct_answer', mode='before')
    @classmethod
    def _upper_label(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class ExamIn(BaseModel):
    """Exam creation payload, optionally with its first questions."""
    title: str = Field(min_length=1)
    description: Optional[str] = None
    exam_type: ExamType
    total_mcqs: int = Field(ge=0)
    duration: int = Field(gt=0)
    is_active: bool = True
    questions: List[QuestionIn] = Field(default_factory=list)


class ExamUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    exam_type: Optional[ExamType] = None
    total_mcqs: Optional[int] = Field(default=None, ge=0)
    duration: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class ExamAccessIn(BaseModel):
    """Grant payload; at least one target must be set (checked by the service)."""
    exam_id: int
    profession_id: Optional[int] = None
    health_authority_id: Optional[int] = None
    user_id: Optional[int] = None


class AdminUserIn(BaseModel):
    """Body of the privileged `/api/admin-users` endpoint.

    Fields are loosely typed: the endpoint reports missing or
    malformed values as `{error: ...}` bodies rather than validation errors,
    so the service layer does the checking.
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: Optional[int] = None
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias='fullName')
    profession_id: Optional[int] = Field(default=None, alias='professionId')
    health_authority_id: Optional[int] = Field(default=None, alias='healthAuthorityId')
    daily_mcq_limit: Optional[Any] = Field(default=None, alias='dailyMcqLimit')
    is_active: Optional[Any] = Field(default=None, alias='isActive')


class SubmissionIn(BaseModel):
    """Answers for one delivery.

    `answers` maps question id to the label the user picked as displayed
    (i.e. the shuffled position), or null for a skipped question.
    """
    delivery_id: int
    answers: Dict[str, Optional[OptionLabel]] = Field(default_factory=dict)
    time_spent: Optional[int] = Field(default=None, ge=0)
