"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and the pure helpers in `utils`. Services perform validation, execute
domain logic and persist aggregates via repositories. Failures are
raised as `ValueError` subclasses carrying human-readable messages; the
controllers map each subclass to an HTTP status.
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from passlib.context import CryptContext
from pydantic import ValidationError
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .schemas import AdminUserIn, ExamAccessIn, ExamIn, ExamUpdate, QuestionIn
from .utils.access import accessible_exam_ids, grant_applies, is_admin
from .utils.parsers import parse_file_to_questions
from .utils.scoring import (
    answered_question_ids,
    compute_metrics,
    count_answered,
    grade_answers,
    remaining_quota,
)
from .utils.shuffle import (
    OPTION_LABELS,
    decode_answer,
    serialize_mapping,
    shuffle_options,
    shuffle_questions,
)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
RECENT_ATTEMPTS_LIMIT = 10
ALREADY_COMPLETED = 'You have already completed all available questions for this exam.'

logger = logging.getLogger("licensing_exams.services")


class NotFoundError(ValueError):
    """A referenced record does not exist (or is hidden from the caller)."""


class AccessDeniedError(ValueError):
    """The caller is not allowed to perform the operation."""


class ConflictError(ValueError):
    """The operation clashes with existing state (e.g. exam already completed)."""


class QuotaExceededError(ValueError):
    """The caller has used up today's MCQ quota."""


def _today() -> date:
    """Current UTC date; daily usage counters roll over at UTC midnight."""
    return datetime.now(timezone.utc).date()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def create_access_token(user: models.UserProfile) -> str:
    """Sign a bearer token identifying `user`."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role.value if isinstance(user.role, models.UserRole) else user.role,
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _dump(obj, exclude: Optional[set] = None) -> Optional[dict]:
    if obj is None:
        return None
    return obj.model_dump(exclude=exclude or set())


def profile_payload(session: Session, user: models.UserProfile) -> dict:
    """Serialize a profile with its profession and health authority expanded."""
    out = _dump(user, exclude={'password_hash'})
    out['profession'] = _dump(repositories.ProfessionRepository(session).get(user.profession_id)) if user.profession_id else None
    out['health_authority'] = _dump(repositories.HealthAuthorityRepository(session).get(user.health_authority_id)) if user.health_authority_id else None
    return out


def _exam_summary(exam: Optional[models.Exam]) -> Optional[dict]:
    if exam is None:
        return None
    return {'id': exam.id, 'title': exam.title, 'exam_type': exam.exam_type, 'duration': exam.duration}


class AuthService:
    """Local identity provider: password hashing and token issuing."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, password: str, full_name: str, role: models.UserRole = models.UserRole.USER, **fields) -> models.UserProfile:
        """Create a new account with a hashed password.

        Returns the persisted `UserProfile` instance.
        """
        if self.user_repo.get_by_email(email):
            raise ValueError('A user with this email already exists')
        user = models.UserProfile(
            email=email.strip().lower(),
            password_hash=PWD_CTX.hash(password),
            full_name=full_name,
            role=role,
            **fields,
        )
        return self.user_repo.create(user)

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if the credentials are wrong and raises
        `AccessDeniedError` for a disabled account.
        """
        user = self.user_repo.get_by_email(email)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        if not user.is_active:
            raise AccessDeniedError('account is disabled')
        return create_access_token(user)


class AdminUserService:
    """Account mutations behind the privileged `/api/admin-users` endpoint."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.auth = AuthService(session)

    @staticmethod
    def _normalize_limit(value) -> Optional[int]:
        # only real numbers count; anything else clears the limit
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if isinstance(value, float) and not value.is_integer():
            return None
        if value < 0:
            raise ValueError('dailyMcqLimit must be >= 0')
        return int(value)

    def _check_refs(self, profession_id: Optional[int], health_authority_id: Optional[int]) -> None:
        if profession_id and not repositories.ProfessionRepository(self.session).get(profession_id):
            raise ValueError('profession not found')
        if health_authority_id and not repositories.HealthAuthorityRepository(self.session).get(health_authority_id):
            raise ValueError('health authority not found')

    def create(self, payload: AdminUserIn) -> dict:
        if not payload.email or not payload.password or not payload.full_name:
            raise ValueError('email, password and fullName are required')
        self._check_refs(payload.profession_id, payload.health_authority_id)
        user = self.auth.register(
            payload.email,
            payload.password,
            payload.full_name,
            role=models.UserRole.USER,
            profession_id=payload.profession_id or None,
            health_authority_id=payload.health_authority_id or None,
            daily_mcq_limit=self._normalize_limit(payload.daily_mcq_limit),
            is_active=payload.is_active is not False,
        )
        logger.info("admin created user id=%s email=%s", user.id, user.email)
        return profile_payload(self.session, user)

    def update(self, payload: AdminUserIn) -> dict:
        if not payload.id:
            raise ValueError('id is required')
        user = self.user_repo.get(payload.id)
        if not user:
            raise NotFoundError('user not found')
        self._check_refs(payload.profession_id, payload.health_authority_id)
        if payload.password:
            user.password_hash = PWD_CTX.hash(payload.password)
        if payload.full_name is not None:
            user.full_name = payload.full_name
        user.profession_id = payload.profession_id or None
        user.health_authority_id = payload.health_authority_id or None
        user.daily_mcq_limit = self._normalize_limit(payload.daily_mcq_limit)
        if isinstance(payload.is_active, bool):
            user.is_active = payload.is_active
        user = self.user_repo.save(user)
        logger.info("admin updated user id=%s", user.id)
        return profile_payload(self.session, user)

    def delete(self, payload: AdminUserIn, acting_user_id: Optional[int] = None) -> dict:
        if not payload.id:
            raise ValueError('id is required')
        if acting_user_id is not None and payload.id == acting_user_id:
            raise ValueError('you cannot delete your own account')
        user = self.user_repo.get(payload.id)
        if not user:
            raise NotFoundError('user not found')
        self.user_repo.delete(user)
        logger.info("admin deleted user id=%s", payload.id)
        return {'id': payload.id}

    def list_users(self) -> List[dict]:
        return [profile_payload(self.session, u) for u in self.user_repo.list_all()]


class CatalogService:
    """Admin CRUD for professions, health authorities, exams, questions and grants."""
    def __init__(self, session: Session):
        self.session = session
        self.professions = repositories.ProfessionRepository(session)
        self.authorities = repositories.HealthAuthorityRepository(session)
        self.exam_repo = repositories.ExamRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.access_repo = repositories.AccessRepository(session)

    # professions / health authorities

    def _create_named(self, repo, obj):
        if repo.get_by_name(obj.name):
            raise ValueError(f'{obj.name!r} already exists')
        return repo.create(obj)

    def _update_named(self, repo, obj_id: int, data: dict):
        obj = repo.get(obj_id)
        if not obj:
            raise NotFoundError('record not found')
        existing = repo.get_by_name(data['name'])
        if existing and existing.id != obj_id:
            raise ValueError(f"{data['name']!r} already exists")
        for key, value in data.items():
            setattr(obj, key, value)
        return repo.save(obj)

    def _delete_named(self, repo, obj_id: int) -> None:
        obj = repo.get(obj_id)
        if not obj:
            raise NotFoundError('record not found')
        repo.delete(obj)

    def create_profession(self, data: dict) -> models.Profession:
        return self._create_named(self.professions, models.Profession(**data))

    def update_profession(self, profession_id: int, data: dict) -> models.Profession:
        return self._update_named(self.professions, profession_id, data)

    def delete_profession(self, profession_id: int) -> None:
        self._delete_named(self.professions, profession_id)

    def create_health_authority(self, data: dict) -> models.HealthAuthority:
        return self._create_named(self.authorities, models.HealthAuthority(**data))

    def update_health_authority(self, authority_id: int, data: dict) -> models.HealthAuthority:
        return self._update_named(self.authorities, authority_id, data)

    def delete_health_authority(self, authority_id: int) -> None:
        self._delete_named(self.authorities, authority_id)

    # exams

    def _get_exam(self, exam_id: int) -> models.Exam:
        exam = self.exam_repo.get(exam_id)
        if not exam:
            raise NotFoundError('Exam not found')
        return exam

    def list_exams(self) -> List[dict]:
        """All exams, newest first, each with its `question_count`."""
        exams = self.exam_repo.list_all()
        counts = self.exam_repo.question_counts(e.id for e in exams)
        return [{**e.model_dump(), 'question_count': counts.get(e.id, 0)} for e in exams]

    def create_exam(self, payload: ExamIn) -> models.Exam:
        """Create an exam and, when given, its initial questions."""
        exam = self.exam_repo.create(models.Exam(**payload.model_dump(exclude={'questions'})))
        if payload.questions:
            self.q_repo.create_many([models.Question(exam_id=exam.id, **q.model_dump()) for q in payload.questions])
            self.session.refresh(exam)
        logger.info("exam created id=%s questions=%d", exam.id, len(payload.questions))
        return exam

    def update_exam(self, exam_id: int, payload: ExamUpdate) -> models.Exam:
        exam = self._get_exam(exam_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            if value is None and key != 'description':
                continue
            setattr(exam, key, value)
        return self.exam_repo.save(exam)

    def delete_exam(self, exam_id: int) -> None:
        self.exam_repo.delete(self._get_exam(exam_id))
        logger.info("exam deleted id=%s", exam_id)

    # questions

    def list_questions(self, exam_id: int) -> List[models.Question]:
        self._get_exam(exam_id)
        return self.q_repo.list_for_exam(exam_id)

    def add_question(self, exam_id: int, payload: QuestionIn) -> models.Question:
        self._get_exam(exam_id)
        return self.q_repo.create(models.Question(exam_id=exam_id, **payload.model_dump()))

    def bulk_add_questions(self, exam_id: int, questions: List[QuestionIn]) -> List[models.Question]:
        if not questions:
            raise ValueError('No questions provided for bulk upload')
        self._get_exam(exam_id)
        return self.q_repo.create_many([models.Question(exam_id=exam_id, **q.model_dump()) for q in questions])

    def update_question(self, question_id: int, payload: QuestionIn) -> models.Question:
        question = self.q_repo.get(question_id)
        if not question:
            raise NotFoundError('question not found')
        for key, value in payload.model_dump().items():
            setattr(question, key, value)
        return self.q_repo.save(question)

    def delete_question(self, question_id: int) -> None:
        question = self.q_repo.get(question_id)
        if not question:
            raise NotFoundError('question not found')
        self.q_repo.delete(question)

    def import_file(self, exam_id: int, file_bytes: bytes, filename: str, dry_run: bool = False) -> dict:
        """Parse an uploaded CSV/JSON question bank and insert the valid rows.

        Returns a dictionary with the number of created questions and any
        validation `errors` encountered per row (zero-based `index`).
        """
        self._get_exam(exam_id)
        parsed = parse_file_to_questions(file_bytes, filename)
        valid = []
        errors = []
        for idx, row in enumerate(parsed):
            try:
                valid.append(QuestionIn.model_validate(row))
            except ValidationError as e:
                first = e.errors()[0]
                field = '.'.join(str(p) for p in first.get('loc', ()))
                errors.append({'index': idx, 'error': f"{field}: {first.get('msg')}" if field else first.get('msg')})
        if valid and not dry_run:
            self.q_repo.create_many([models.Question(exam_id=exam_id, **q.model_dump()) for q in valid])
        logger.info("question import exam=%s file=%s valid=%d errors=%d dry_run=%s", exam_id, filename, len(valid), len(errors), dry_run)
        return {'created': 0 if dry_run else len(valid), 'valid': len(valid), 'errors': errors}

    # access grants

    def _grant_payload(self, grant: models.ExamAccess) -> dict:
        user = repositories.UserRepository(self.session).get(grant.user_id) if grant.user_id else None
        return {
            **grant.model_dump(),
            'exam': _dump(self.exam_repo.get(grant.exam_id)),
            'profession': _dump(self.professions.get(grant.profession_id)) if grant.profession_id else None,
            'health_authority': _dump(self.authorities.get(grant.health_authority_id)) if grant.health_authority_id else None,
            'user': {'id': user.id, 'email': user.email, 'full_name': user.full_name} if user else None,
        }

    def list_grants(self) -> List[dict]:
        return [self._grant_payload(g) for g in self.access_repo.list_all()]

    def create_grant(self, payload: ExamAccessIn) -> dict:
        if payload.profession_id is None and payload.health_authority_id is None and payload.user_id is None:
            raise ValueError('at least one of profession_id, health_authority_id or user_id is required')
        self._get_exam(payload.exam_id)
        if payload.profession_id is not None and not self.professions.get(payload.profession_id):
            raise NotFoundError('profession not found')
        if payload.health_authority_id is not None and not self.authorities.get(payload.health_authority_id):
            raise NotFoundError('health authority not found')
        if payload.user_id is not None and not repositories.UserRepository(self.session).get(payload.user_id):
            raise NotFoundError('user not found')
        grant = self.access_repo.create(models.ExamAccess(**payload.model_dump()))
        logger.info("access grant created id=%s exam=%s", grant.id, grant.exam_id)
        return self._grant_payload(grant)

    def delete_grant(self, grant_id: int) -> None:
        grant = self.access_repo.get(grant_id)
        if not grant:
            raise NotFoundError('access grant not found')
        self.access_repo.delete(grant)

    def stats(self) -> dict:
        counter = repositories.StatsRepository(self.session)
        return {
            'total_users': counter.count(models.UserProfile),
            'total_exams': counter.count(models.Exam),
            'total_attempts': counter.count(models.ExamAttempt),
            'total_professions': counter.count(models.Profession),
            'total_health_authorities': counter.count(models.HealthAuthority),
        }


class ExamService:
    """Exam delivery, submission scoring, attempt history and the dashboard."""
    def __init__(self, session: Session, rng: Optional[random.Random] = None):
        self.session = session
        self.rng = rng
        self.user_repo = repositories.UserRepository(session)
        self.exam_repo = repositories.ExamRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.access_repo = repositories.AccessRepository(session)
        self.delivery_repo = repositories.DeliveryRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.usage_repo = repositories.UsageRepository(session)

    def _load_user(self, user_id: int) -> models.UserProfile:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError('User not found')
        return user

    def _daily_usage(self, user: models.UserProfile) -> dict:
        used = self.usage_repo.used_on(user.id, _today())
        return {'used': used, 'limit': user.daily_mcq_limit, 'remaining': remaining_quota(user.daily_mcq_limit, used)}

    def has_access(self, user: models.UserProfile, exam_id: int) -> bool:
        if is_admin(user):
            return True
        return any(grant_applies(g, user) for g in self.access_repo.list_candidates_for_user(user, exam_id=exam_id))

    def list_available(self, user_id: int) -> List[dict]:
        """Active exams the user may take, each with its `question_count`."""
        user = self._load_user(user_id)
        if is_admin(user):
            exams = self.exam_repo.list_active()
        else:
            ids = accessible_exam_ids(self.access_repo.list_candidates_for_user(user), user)
            exams = self.exam_repo.list_active(ids)
        counts = self.exam_repo.question_counts(e.id for e in exams)
        return [{**e.model_dump(), 'question_count': counts.get(e.id, 0)} for e in exams]

    def take_exam(self, user_id: int, exam_id: int) -> dict:
        """Select, shuffle and hand out the questions for a new attempt.

        Questions answered in any earlier attempt on this exam are excluded.
        The remaining ones are shuffled, each question's options are
        shuffled, and the set is cut down to the user's remaining daily
        quota. The shuffle is stored as an `ExamDelivery`, superseding any
        delivery the user still had open; the returned payload contains
        neither correct answers nor the option mapping.
        """
        user = self._load_user(user_id)
        if not self.has_access(user, exam_id):
            raise AccessDeniedError('You do not have access to this exam')
        exam = self.exam_repo.get_active(exam_id)
        if not exam:
            raise NotFoundError('Exam not found')

        answered = answered_question_ids(self.attempt_repo.list_for_user(user.id, exam_id=exam.id))
        available = [q for q in self.q_repo.list_for_exam(exam.id) if str(q.id) not in answered]
        if not available:
            raise ConflictError(ALREADY_COMPLETED)

        delivered = [(q, shuffle_options(q, self.rng)) for q in shuffle_questions(available, self.rng)]

        usage = self._daily_usage(user)
        remaining = usage['remaining']
        if remaining is not None:
            if remaining <= 0:
                logger.info("daily quota exhausted user=%s limit=%s", user.id, user.daily_mcq_limit)
                raise QuotaExceededError(
                    f'Daily MCQ limit reached. You have used all {user.daily_mcq_limit} MCQs for today.'
                )
            if remaining < len(delivered):
                delivered = delivered[:remaining]

        questions = []
        for q, opts in delivered:
            item = {'id': q.id, 'question': q.question}
            for label, text in zip(OPTION_LABELS, opts.texts):
                item[f'option_{label.lower()}'] = text
            questions.append(item)
        exam_info = {
            'id': exam.id,
            'title': exam.title,
            'description': exam.description,
            'exam_type': exam.exam_type,
            'total_mcqs': exam.total_mcqs,
            'duration': exam.duration,
        }

        # a user works on one delivery at a time; older open ones can no longer be submitted
        superseded = self.delivery_repo.supersede_open(user.id, datetime.now(timezone.utc))
        delivery = self.delivery_repo.create(models.ExamDelivery(
            user_id=user.id,
            exam_id=exam_info['id'],
            question_ids=[item['id'] for item in questions],
            option_mappings={str(q.id): serialize_mapping(opts.position_to_label) for q, opts in delivered},
        ))
        logger.info(
            "exam delivered delivery=%s user=%s exam=%s questions=%d superseded=%d",
            delivery.id, user_id, exam_id, len(questions), superseded,
        )

        return {
            'delivery_id': delivery.id,
            'exam': exam_info,
            'questions': questions,
            'daily_usage': {'mcq_count': usage['used'], 'limit': usage['limit'], 'remaining': remaining},
        }

    def submit_exam(self, user_id: int, exam_id: int, delivery_id: int, answers: Dict[str, Optional[str]], time_spent: Optional[int] = None) -> dict:
        """Score a delivery and store the attempt.

        `answers` holds displayed labels; they are decoded through the
        delivery's option mapping before comparison with the stored key.
        """
        user = self._load_user(user_id)
        delivery = self.delivery_repo.get(delivery_id)
        if not delivery or delivery.user_id != user.id or delivery.exam_id != exam_id:
            raise NotFoundError('exam session not found')
        if delivery.submitted_at is not None:
            raise ConflictError('This exam session has already been submitted')
        if delivery.superseded_at is not None:
            raise ConflictError('This exam session was replaced by a newer one')
        if not self.has_access(user, exam_id):
            raise AccessDeniedError('You do not have access to this exam')
        exam = self.exam_repo.get_active(exam_id)
        if not exam:
            raise NotFoundError('Exam not found')

        prior = self.attempt_repo.list_for_user(user.id, exam_id=exam_id)
        answered_before = answered_question_ids(prior)
        delivered_ids = [int(qid) for qid in delivery.question_ids]
        delivered_keys = {str(qid) for qid in delivered_ids}
        by_id = {q.id: q for q in self.q_repo.list_by_ids(delivered_ids)}
        # questions deleted after delivery, or answered in another attempt since, are not graded
        questions = [by_id[qid] for qid in delivered_ids if qid in by_id and str(qid) not in answered_before]

        decoded: Dict[str, Optional[str]] = {}
        for key, displayed in (answers or {}).items():
            key = str(key)
            if key not in delivered_keys:
                raise ValueError(f'question {key} is not part of this exam session')
            if displayed is None:
                continue
            decoded[key] = decode_answer(displayed, delivery.option_mappings.get(key, {}))
        stored_answers = {str(q.id): decoded.get(str(q.id)) for q in questions}

        results = grade_answers(questions, stored_answers)
        correct = sum(1 for r in results if r['is_correct'])
        total = len(questions)
        answered_count = count_answered(stored_answers)

        cumulative_correct = sum(a.correct_answers for a in prior) + correct
        cumulative_answered = sum(count_answered(a.answers) for a in prior) + answered_count
        pool_size = self.q_repo.count_for_exam(exam_id)
        metrics = compute_metrics(
            correct=correct,
            daily_limit=user.daily_mcq_limit,
            cumulative_correct=cumulative_correct,
            cumulative_answered=cumulative_answered,
            pool_size=pool_size,
            readiness_threshold=settings.READINESS_THRESHOLD,
        )

        now = datetime.now(timezone.utc)
        if time_spent is None:
            time_spent = max(0, int((now - _as_utc(delivery.created_at)).total_seconds()))

        attempt = models.ExamAttempt(
            user_id=user.id,
            exam_id=exam_id,
            delivery_id=delivery.id,
            score=metrics['score'],
            main_score=metrics['main_score'],
            attempt_overview=metrics['attempt_overview'],
            overall_result=metrics['overall_result'],
            is_ready=metrics['is_ready'],
            total_questions=total,
            correct_answers=correct,
            answered_count=answered_count,
            cumulative_correct_answers=cumulative_correct,
            cumulative_answered_questions=cumulative_answered,
            total_exam_questions=pool_size,
            daily_limit=user.daily_mcq_limit,
            time_spent=time_spent,
            answers=stored_answers,
            completed_at=now,
        )
        delivery.submitted_at = now
        self.session.add(attempt)
        self.session.add(delivery)
        self.usage_repo.increment(user.id, _today(), total, commit=False)
        self.session.commit()
        self.session.refresh(attempt)
        logger.info(
            "exam submitted attempt=%s user=%s exam=%s correct=%d/%d score=%.2f",
            attempt.id, user.id, exam_id, correct, total, attempt.score,
        )

        return {
            'attempt': {**attempt.model_dump(), 'exam': _exam_summary(exam)},
            'results': results,
            **metrics,
            'correct_answers': correct,
            'total_questions': total,
            'answered_count': answered_count,
            'cumulative_correct_answers': cumulative_correct,
            'cumulative_answered_questions': cumulative_answered,
            'total_exam_questions': pool_size,
            'daily_limit': user.daily_mcq_limit,
        }

    def list_attempts(self, user_id: int, exam_id: Optional[int] = None) -> List[dict]:
        attempts = self.attempt_repo.list_for_user(user_id, exam_id=exam_id)
        exams = {}
        for a in attempts:
            if a.exam_id not in exams:
                exams[a.exam_id] = self.exam_repo.get(a.exam_id)
        return [{**a.model_dump(), 'exam': _exam_summary(exams[a.exam_id])} for a in attempts]

    def review_attempt(self, user_id: int, attempt_id: int) -> dict:
        """An attempt with its questions, options and the user's answers.

        Owners keep review access after losing access to the exam itself.
        """
        user = self._load_user(user_id)
        attempt = self.attempt_repo.get(attempt_id)
        if not attempt or (attempt.user_id != user.id and not is_admin(user)):
            raise NotFoundError('attempt not found')
        answers = attempt.answers or {}
        by_id = {q.id: q for q in self.q_repo.list_by_ids(int(k) for k in answers)}
        questions = [by_id[int(k)] for k in answers if int(k) in by_id]
        review = grade_answers(questions, answers)
        for item, q in zip(review, questions):
            for label in OPTION_LABELS:
                key = f'option_{label.lower()}'
                item[key] = getattr(q, key)
        return {
            **attempt.model_dump(),
            'exam': _exam_summary(self.exam_repo.get(attempt.exam_id)),
            'review': review,
        }

    def dashboard(self, user_id: int) -> dict:
        user = self._load_user(user_id)
        recent = self.attempt_repo.list_for_user(user.id, limit=RECENT_ATTEMPTS_LIMIT)
        exams = {a.exam_id: self.exam_repo.get(a.exam_id) for a in recent}
        return {
            'user': profile_payload(self.session, user),
            'recent_attempts': [{**a.model_dump(), 'exam': _exam_summary(exams[a.exam_id])} for a in recent],
            'daily_usage': self._daily_usage(user),
        }
