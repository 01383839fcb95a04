"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; JSON columns hold the per-attempt answer
maps and the per-delivery option shuffles.
"""

from enum import Enum
from typing import Dict, List, Optional
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime, date, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class ExamType(str, Enum):
    PROMETRIC = "PROMETRIC"
    PEARSON = "PEARSON"


class Profession(SQLModel, table=True):
    """A profession (e.g. nurse, pharmacist) users and grants can refer to."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, nullable=False, unique=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class HealthAuthority(SQLModel, table=True):
    """A licensing jurisdiction."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, nullable=False, unique=True)
    country: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class UserProfile(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `daily_mcq_limit`: per-day question quota, `None` means unlimited
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    full_name: str
    role: UserRole = Field(default=UserRole.USER)
    profession_id: Optional[int] = Field(default=None, foreign_key='profession.id', index=True)
    health_authority_id: Optional[int] = Field(default=None, foreign_key='healthauthority.id', index=True)
    daily_mcq_limit: Optional[int] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Exam(SQLModel, table=True):
    """A mock exam; `duration` is in minutes."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    exam_type: ExamType
    total_mcqs: int
    duration: int
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    questions: List['Question'] = Relationship(back_populates='exam')


class Question(SQLModel, table=True):
    """A four-option multiple-choice question belonging to an exam."""
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: str = Field(max_length=1)
    explanation: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    exam: Optional[Exam] = Relationship(back_populates='questions')


class ExamAccess(SQLModel, table=True):
    """Grant making an exam visible to a user, profession and/or health authority.

    At least one of the three targets is set; see `utils.access.grant_applies`
    for how a grant is matched against a profile.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    profession_id: Optional[int] = Field(default=None, foreign_key='profession.id', index=True)
    health_authority_id: Optional[int] = Field(default=None, foreign_key='healthauthority.id', index=True)
    user_id: Optional[int] = Field(default=None, foreign_key='userprofile.id', index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class ExamDelivery(SQLModel, table=True):
    """The set of questions handed out by one "take exam" request.

    `option_mappings` maps a question id (as string) to its shuffled
    position -> original label map, e.g. `{"12": {"0": "C", "1": "A", ...}}`.
    It never leaves the server. A delivery is closed either by its
    submission (`submitted_at`) or by a newer delivery to the same user
    (`superseded_at`); only one delivery per user is open at a time.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='userprofile.id', index=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    question_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    option_mappings: Dict[str, Dict[str, str]] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)
    submitted_at: Optional[datetime] = None
    superseded_at: Optional[datetime] = None


class ExamAttempt(SQLModel, table=True):
    """A scored submission.

    `answers` maps question id (as string) to the original option label the
    user chose, or `None` when the question was delivered but left unanswered.
    The metric columns are the values reported at submit time; `score` is
    the primary one (`main_score` when a daily limit applied, else
    `attempt_overview`).
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='userprofile.id', index=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    delivery_id: Optional[int] = Field(default=None, foreign_key='examdelivery.id')
    score: float
    main_score: Optional[float] = None
    attempt_overview: float = 0.0
    overall_result: float = 0.0
    is_ready: bool = False
    total_questions: int
    correct_answers: int
    answered_count: int = 0
    cumulative_correct_answers: int = 0
    cumulative_answered_questions: int = 0
    total_exam_questions: int = 0
    daily_limit: Optional[int] = None
    time_spent: int
    answers: Dict[str, Optional[str]] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    completed_at: datetime = Field(default_factory=_utcnow)


class DailyMcqUsage(SQLModel, table=True):
    """Per-user, per-day count of delivered questions that were submitted."""
    __table_args__ = (UniqueConstraint('user_id', 'usage_date'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='userprofile.id', index=True)
    usage_date: date
    mcq_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
