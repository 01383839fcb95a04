import os
import tempfile
import uuid
from pathlib import Path
from types import SimpleNamespace

import pytest

# Point the app at a throwaway SQLite file before any package import reads settings.
_DB_DIR = Path(tempfile.mkdtemp(prefix="licensing-exams-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "1000"

from sqlmodel import Session  # noqa: E402

from licensing_exams import models, services  # noqa: E402
from licensing_exams.database import create_db_and_tables, engine  # noqa: E402
from licensing_exams.schemas import ExamAccessIn, ExamIn, QuestionIn  # noqa: E402
from licensing_exams.utils.shuffle import OPTION_LABELS  # noqa: E402

PASSWORD = "secret-pw"


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Create the tables once for the whole test session."""
    create_db_and_tables()
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user():
    """Factory creating an account directly and returning its id, email and auth headers."""
    def _make(role=models.UserRole.USER, **fields):
        email = f"{uuid.uuid4().hex[:12]}@example.com"
        with Session(engine) as session:
            user = services.AuthService(session).register(email, PASSWORD, "Test User", role=role, **fields)
            token = services.create_access_token(user)
            return SimpleNamespace(id=user.id, email=email, headers={'Authorization': f'Bearer {token}'})
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(role=models.UserRole.ADMIN)


@pytest.fixture
def make_profession():
    def _make():
        with Session(engine) as session:
            return services.CatalogService(session).create_profession({'name': f"prof-{uuid.uuid4().hex[:8]}"}).id
    return _make


@pytest.fixture
def make_authority():
    def _make():
        with Session(engine) as session:
            return services.CatalogService(session).create_health_authority(
                {'name': f"ha-{uuid.uuid4().hex[:8]}", 'country': 'AE'}
            ).id
    return _make


@pytest.fixture
def make_exam():
    """Factory creating an exam with `n` questions whose option texts are all unique.

    Returns the exam id and, per question id, the correct label and the
    option texts keyed by original label.
    """
    def _make(n=3, is_active=True):
        tag = uuid.uuid4().hex[:6]
        questions = [
            QuestionIn(
                question=f"{tag} question {i}",
                option_a=f"{tag} q{i} alpha",
                option_b=f"{tag} q{i} bravo",
                option_c=f"{tag} q{i} charlie",
                option_d=f"{tag} q{i} delta",
                correct_answer=OPTION_LABELS[i % 4],
                explanation=f"because {i}",
            )
            for i in range(n)
        ]
        payload = ExamIn(title=f"Exam {tag}", exam_type=models.ExamType.PROMETRIC, total_mcqs=n, duration=30,
                         is_active=is_active, questions=questions)
        with Session(engine) as session:
            svc = services.CatalogService(session)
            exam = svc.create_exam(payload)
            stored = svc.list_questions(exam.id)
            return SimpleNamespace(
                id=exam.id,
                questions={
                    q.id: SimpleNamespace(
                        correct=q.correct_answer,
                        texts={label: getattr(q, f"option_{label.lower()}") for label in OPTION_LABELS},
                    )
                    for q in stored
                },
            )
    return _make


@pytest.fixture
def grant():
    def _grant(exam_id, **targets):
        with Session(engine) as session:
            return services.CatalogService(session).create_grant(ExamAccessIn(exam_id=exam_id, **targets))['id']
    return _grant


def displayed_label(delivered_question: dict, text: str) -> str:
    """Label under which `text` is shown in a delivered (shuffled) question."""
    for label in OPTION_LABELS:
        if delivered_question[f"option_{label.lower()}"] == text:
            return label
    raise AssertionError(f"option {text!r} not shown")


def correct_answers_for(delivery: dict, exam) -> dict:
    """Build an answer map picking the correct option of every delivered question."""
    out = {}
    for q in delivery['questions']:
        info = exam.questions[q['id']]
        out[str(q['id'])] = displayed_label(q, info.texts[info.correct])
    return out


def wrong_answers_for(delivery: dict, exam) -> dict:
    out = {}
    for q in delivery['questions']:
        info = exam.questions[q['id']]
        wrong = next(label for label in OPTION_LABELS if label != info.correct)
        out[str(q['id'])] = displayed_label(q, info.texts[wrong])
    return out
