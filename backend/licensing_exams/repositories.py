"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
catalog entries, exams, questions, grants, deliveries, attempts, daily
usage). Repositories return SQLModel objects and perform
commits/refreshes where appropriate. Cascading deletes are done here
explicitly so they behave the same on every database backend.
"""

from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional
from sqlmodel import Session, select
from sqlalchemy import delete, func, or_
from . import models


def _touch(obj) -> None:
    if hasattr(obj, 'updated_at'):
        obj.updated_at = datetime.now(timezone.utc)


class _Repository:
    def __init__(self, session: Session):
        self.session = session

    def _persist(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def save(self, obj):
        """Persist changes to an already loaded object, bumping `updated_at`."""
        _touch(obj)
        return self._persist(obj)


class UserRepository(_Repository):
    """CRUD operations for `UserProfile` objects."""

    def create(self, user: models.UserProfile) -> models.UserProfile:
        """Persist a new user and return the managed instance."""
        return self._persist(user)

    def get(self, user_id: int) -> Optional[models.UserProfile]:
        """Get a `UserProfile` by primary key."""
        return self.session.get(models.UserProfile, user_id)

    def get_by_email(self, email: str) -> Optional[models.UserProfile]:
        """Return a profile by (case-insensitive) email or `None` if not found."""
        stmt = select(models.UserProfile).where(func.lower(models.UserProfile.email) == email.strip().lower())
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.UserProfile]:
        stmt = select(models.UserProfile).order_by(models.UserProfile.created_at.desc(), models.UserProfile.id.desc())
        return self.session.exec(stmt).all()

    def delete(self, user: models.UserProfile) -> None:
        """Delete a user along with everything they own."""
        uid = user.id
        self.session.exec(delete(models.ExamAccess).where(models.ExamAccess.user_id == uid))
        self.session.exec(delete(models.ExamAttempt).where(models.ExamAttempt.user_id == uid))
        self.session.exec(delete(models.ExamDelivery).where(models.ExamDelivery.user_id == uid))
        self.session.exec(delete(models.DailyMcqUsage).where(models.DailyMcqUsage.user_id == uid))
        self.session.delete(user)
        self.session.commit()


class _CatalogRepository(_Repository):
    """Shared behaviour for the named lookup tables (professions, authorities)."""
    model = None
    profile_column = None
    grant_column = None

    def create(self, obj):
        return self._persist(obj)

    def get(self, obj_id: int):
        return self.session.get(self.model, obj_id)

    def get_by_name(self, name: str):
        return self.session.exec(select(self.model).where(self.model.name == name)).first()

    def list_all(self) -> List:
        return self.session.exec(select(self.model).order_by(self.model.name)).all()

    def delete(self, obj) -> None:
        """Delete `obj`, clearing it from profiles and dropping grants that target it."""
        profiles = self.session.exec(
            select(models.UserProfile).where(getattr(models.UserProfile, self.profile_column) == obj.id)
        ).all()
        for p in profiles:
            setattr(p, self.profile_column, None)
            _touch(p)
            self.session.add(p)
        self.session.exec(delete(models.ExamAccess).where(getattr(models.ExamAccess, self.grant_column) == obj.id))
        self.session.delete(obj)
        self.session.commit()


class ProfessionRepository(_CatalogRepository):
    model = models.Profession
    profile_column = 'profession_id'
    grant_column = 'profession_id'


class HealthAuthorityRepository(_CatalogRepository):
    model = models.HealthAuthority
    profile_column = 'health_authority_id'
    grant_column = 'health_authority_id'


class ExamRepository(_Repository):
    """CRUD operations for `Exam` records."""

    def create(self, exam: models.Exam) -> models.Exam:
        return self._persist(exam)

    def get(self, exam_id: int) -> Optional[models.Exam]:
        return self.session.get(models.Exam, exam_id)

    def get_active(self, exam_id: int) -> Optional[models.Exam]:
        """Return the exam only if it exists and is active."""
        exam = self.get(exam_id)
        if exam is None or not exam.is_active:
            return None
        return exam

    def list_all(self) -> List[models.Exam]:
        """All exams, newest first."""
        stmt = select(models.Exam).order_by(models.Exam.created_at.desc(), models.Exam.id.desc())
        return self.session.exec(stmt).all()

    def list_active(self, exam_ids: Optional[Iterable[int]] = None) -> List[models.Exam]:
        """Active exams, optionally restricted to `exam_ids`."""
        stmt = select(models.Exam).where(models.Exam.is_active == True)  # noqa: E712
        if exam_ids is not None:
            ids = list(exam_ids)
            if not ids:
                return []
            stmt = stmt.where(models.Exam.id.in_(ids))
        return self.session.exec(stmt.order_by(models.Exam.created_at.desc(), models.Exam.id.desc())).all()

    def question_counts(self, exam_ids: Iterable[int]) -> Dict[int, int]:
        """Return `{exam_id: question_count}` for the given exams."""
        ids = list(exam_ids)
        if not ids:
            return {}
        stmt = (
            select(models.Question.exam_id, func.count(models.Question.id))
            .where(models.Question.exam_id.in_(ids))
            .group_by(models.Question.exam_id)
        )
        counts = {exam_id: 0 for exam_id in ids}
        for exam_id, n in self.session.exec(stmt).all():
            counts[exam_id] = n
        return counts

    def delete(self, exam: models.Exam) -> None:
        """Delete an exam with its questions, grants, deliveries and attempts."""
        eid = exam.id
        self.session.exec(delete(models.ExamAttempt).where(models.ExamAttempt.exam_id == eid))
        self.session.exec(delete(models.ExamDelivery).where(models.ExamDelivery.exam_id == eid))
        self.session.exec(delete(models.ExamAccess).where(models.ExamAccess.exam_id == eid))
        self.session.exec(delete(models.Question).where(models.Question.exam_id == eid))
        self.session.delete(exam)
        self.session.commit()


class QuestionRepository(_Repository):
    """CRUD operations for `Question` records."""

    def create(self, question: models.Question) -> models.Question:
        return self._persist(question)

    def create_many(self, questions: List[models.Question]) -> List[models.Question]:
        """Insert several questions in a single commit."""
        for q in questions:
            self.session.add(q)
        self.session.commit()
        for q in questions:
            self.session.refresh(q)
        return questions

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)

    def list_for_exam(self, exam_id: int) -> List[models.Question]:
        """Return all questions of an exam in insertion order."""
        stmt = select(models.Question).where(models.Question.exam_id == exam_id).order_by(models.Question.id)
        return self.session.exec(stmt).all()

    def list_by_ids(self, question_ids: Iterable[int]) -> List[models.Question]:
        ids = list(question_ids)
        if not ids:
            return []
        return self.session.exec(select(models.Question).where(models.Question.id.in_(ids))).all()

    def count_for_exam(self, exam_id: int) -> int:
        stmt = select(func.count(models.Question.id)).where(models.Question.exam_id == exam_id)
        return self.session.exec(stmt).one()

    def delete(self, question: models.Question) -> None:
        self.session.delete(question)
        self.session.commit()


class AccessRepository(_Repository):
    """Exam access grants."""

    def create(self, grant: models.ExamAccess) -> models.ExamAccess:
        return self._persist(grant)

    def get(self, grant_id: int) -> Optional[models.ExamAccess]:
        return self.session.get(models.ExamAccess, grant_id)

    def list_all(self) -> List[models.ExamAccess]:
        stmt = select(models.ExamAccess).order_by(models.ExamAccess.created_at.desc(), models.ExamAccess.id.desc())
        return self.session.exec(stmt).all()

    def list_candidates_for_user(self, user: models.UserProfile, exam_id: Optional[int] = None) -> List[models.ExamAccess]:
        """Grants that name the user, their profession or their health authority.

        This is a coarse pre-filter; `utils.access.grant_applies` makes the
        final decision for grants naming both a profession and an authority.
        """
        clauses = [models.ExamAccess.user_id == user.id]
        if user.profession_id is not None:
            clauses.append(models.ExamAccess.profession_id == user.profession_id)
        if user.health_authority_id is not None:
            clauses.append(models.ExamAccess.health_authority_id == user.health_authority_id)
        stmt = select(models.ExamAccess).where(or_(*clauses))
        if exam_id is not None:
            stmt = stmt.where(models.ExamAccess.exam_id == exam_id)
        return self.session.exec(stmt).all()

    def delete(self, grant: models.ExamAccess) -> None:
        self.session.delete(grant)
        self.session.commit()


class DeliveryRepository(_Repository):
    """Persist exam deliveries (handed-out question sets with their shuffles)."""

    def create(self, delivery: models.ExamDelivery) -> models.ExamDelivery:
        return self._persist(delivery)

    def get(self, delivery_id: int) -> Optional[models.ExamDelivery]:
        return self.session.get(models.ExamDelivery, delivery_id)

    def list_open_for_user(self, user_id: int) -> List[models.ExamDelivery]:
        """Deliveries of a user that were neither submitted nor superseded."""
        stmt = select(models.ExamDelivery).where(
            models.ExamDelivery.user_id == user_id,
            models.ExamDelivery.submitted_at == None,  # noqa: E711
            models.ExamDelivery.superseded_at == None,  # noqa: E711
        )
        return self.session.exec(stmt).all()

    def supersede_open(self, user_id: int, when: datetime) -> int:
        """Close every open delivery of `user_id` without committing; returns how many."""
        open_deliveries = self.list_open_for_user(user_id)
        for d in open_deliveries:
            d.superseded_at = when
            self.session.add(d)
        return len(open_deliveries)


class AttemptRepository(_Repository):
    """Persist and query scored exam attempts."""

    def create(self, attempt: models.ExamAttempt) -> models.ExamAttempt:
        return self._persist(attempt)

    def get(self, attempt_id: int) -> Optional[models.ExamAttempt]:
        return self.session.get(models.ExamAttempt, attempt_id)

    def list_for_user(self, user_id: int, exam_id: Optional[int] = None, limit: Optional[int] = None) -> List[models.ExamAttempt]:
        """Attempts of a user, newest first, optionally for one exam only."""
        stmt = select(models.ExamAttempt).where(models.ExamAttempt.user_id == user_id)
        if exam_id is not None:
            stmt = stmt.where(models.ExamAttempt.exam_id == exam_id)
        stmt = stmt.order_by(models.ExamAttempt.completed_at.desc(), models.ExamAttempt.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.exec(stmt).all()


class UsageRepository(_Repository):
    """Daily MCQ usage counters keyed by (user, date)."""

    def get_for_day(self, user_id: int, day: date) -> Optional[models.DailyMcqUsage]:
        stmt = select(models.DailyMcqUsage).where(
            models.DailyMcqUsage.user_id == user_id,
            models.DailyMcqUsage.usage_date == day,
        )
        return self.session.exec(stmt).first()

    def used_on(self, user_id: int, day: date) -> int:
        usage = self.get_for_day(user_id, day)
        return usage.mcq_count if usage else 0

    def increment(self, user_id: int, day: date, amount: int, commit: bool = True) -> models.DailyMcqUsage:
        """Add `amount` to the counter for `day`, creating it on first use."""
        usage = self.get_for_day(user_id, day)
        if usage is None:
            usage = models.DailyMcqUsage(user_id=user_id, usage_date=day, mcq_count=amount)
        else:
            usage.mcq_count = (usage.mcq_count or 0) + amount
            _touch(usage)
        self.session.add(usage)
        if commit:
            self.session.commit()
            self.session.refresh(usage)
        return usage


class StatsRepository(_Repository):
    """Row counts for the admin dashboard."""

    def count(self, model) -> int:
        return self.session.exec(select(func.count()).select_from(model)).one()
