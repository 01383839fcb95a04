"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the mock licensing exams
backend. Controllers are intentionally thin: they accept requests,
delegate to services, and return JSON responses. Service errors are
`ValueError` subclasses and are translated to status codes by
`_http_error`.

Endpoints implemented:
- POST /auth/login, GET /auth/me
- POST/PUT/DELETE/OPTIONS /api/admin-users (privileged account management)
- GET /professions, GET /health-authorities
- /admin/... catalog management (professions, health authorities, users,
  exams, questions, access grants, stats)
- GET /exams, GET /exams/{id}/take, POST /exams/{id}/submit
- GET /attempts, GET /attempts/{id}, GET /dashboard
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlmodel import Session

from . import models, services
from .auth import get_current_user, require_admin, resolve_token_user
from .config import settings
from .database import create_db_and_tables, get_session
from .schemas import (
    AdminUserIn,
    ExamAccessIn,
    ExamIn,
    ExamUpdate,
    HealthAuthorityIn,
    LoginIn,
    ProfessionIn,
    QuestionIn,
    SubmissionIn,
    TokenOut,
)
from .utils.rate_limit import LoginRateLimiter

app = FastAPI(title="Mock Licensing Exams API")
logger = logging.getLogger("licensing_exams.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_login_rate_limiter = LoginRateLimiter()
_admin_bearer = HTTPBearer(auto_error=False)

ADMIN_USERS_ALLOW = "OPTIONS, POST, PUT, DELETE"
QUESTION_UPLOAD_TYPES = ("text/csv", "application/json", "application/vnd.ms-excel", "text/plain", "application/octet-stream")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    context = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else "unknown",
    }
    try:
        response = await call_next(request)
    except Exception:
        context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", json.dumps(context, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    context["status_code"] = response.status_code
    context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", json.dumps(context, ensure_ascii=True))
    return response


def _http_error(exc: ValueError) -> HTTPException:
    """Map a service error onto an HTTPException with the matching status."""
    if isinstance(exc, services.NotFoundError):
        status = 404
    elif isinstance(exc, services.AccessDeniedError):
        status = 403
    elif isinstance(exc, services.ConflictError):
        status = 409
    elif isinstance(exc, services.QuotaExceededError):
        status = 429
    else:
        status = 400
    return HTTPException(status_code=status, detail=str(exc))


def _client_key(request: Request) -> str:
    return f"{request.client.host if request.client else 'unknown'}:login"


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


# --- identity -------------------------------------------------------------

@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate with email/password and return a signed JWT.

    Attempts are throttled per client address.
    """
    key = _client_key(request)
    allowed, retry_after = _login_rate_limiter.allow(
        key, settings.LOGIN_RATE_LIMIT_PER_MIN, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"too many login attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    try:
        token = services.AuthService(db).authenticate(payload.email, payload.password)
    except ValueError as e:
        raise _http_error(e)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    _login_rate_limiter.reset(key)
    return {'access_token': token}


@app.get('/auth/me')
def me(db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    """Return the caller's profile with profession and health authority."""
    return services.profile_payload(db, user)


# --- privileged account endpoint -------------------------------------------

def _error(status: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status, content={'error': message}, headers=headers)


@app.options('/api/admin-users')
def admin_users_options():
    return Response(status_code=204, headers={'Allow': ADMIN_USERS_ALLOW})


@app.api_route('/api/admin-users', methods=['GET', 'PATCH'])
def admin_users_method_not_allowed():
    return _error(405, 'Method not allowed', headers={'Allow': 'POST, PUT, DELETE, OPTIONS'})


@app.api_route('/api/admin-users', methods=['POST', 'PUT', 'DELETE'])
def admin_users(
    request: Request,
    payload: Optional[dict] = Body(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_admin_bearer),
    db: Session = Depends(get_session),
):
    """Create (POST), update (PUT) or delete (DELETE) an account.

    The bearer token is re-validated and the caller must be an `ADMIN`.
    Responds with `{data: ...}` on success and `{error: ...}` otherwise.
    """
    token = credentials.credentials if credentials else None
    if not token:
        return _error(401, 'Missing access token')
    acting = resolve_token_user(token)
    if acting is None or not acting.is_active:
        return _error(401, 'Invalid session token')
    if acting.role != models.UserRole.ADMIN:
        return _error(401, 'Admin privileges required')

    try:
        body = AdminUserIn.model_validate(payload or {})
    except ValidationError as e:
        return _error(400, f"invalid payload: {e.errors()[0].get('msg')}")

    svc = services.AdminUserService(db)
    try:
        if request.method == 'POST':
            data = svc.create(body)
        elif request.method == 'PUT':
            data = svc.update(body)
        else:
            data = svc.delete(body, acting_user_id=acting.id)
    except services.NotFoundError as e:
        return _error(404, str(e))
    except ValueError as e:
        return _error(400, str(e))
    except Exception:
        logger.exception("admin users API error method=%s", request.method)
        return _error(500, 'Internal server error')
    return JSONResponse(status_code=200, content={'data': jsonable_encoder(data)})


@app.get('/admin/users')
def list_users(db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """List all accounts, newest first."""
    return services.AdminUserService(db).list_users()


# --- catalog ----------------------------------------------------------------

@app.get('/professions')
def list_professions(db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    return services.CatalogService(db).professions.list_all()


@app.post('/admin/professions')
def create_profession(payload: ProfessionIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).create_profession(payload.model_dump())
    except ValueError as e:
        raise _http_error(e)


@app.put('/admin/professions/{profession_id}')
def update_profession(profession_id: int, payload: ProfessionIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).update_profession(profession_id, payload.model_dump())
    except ValueError as e:
        raise _http_error(e)


@app.delete('/admin/professions/{profession_id}')
def delete_profession(profession_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        services.CatalogService(db).delete_profession(profession_id)
    except ValueError as e:
        raise _http_error(e)
    return {'status': 'ok'}


@app.get('/health-authorities')
def list_health_authorities(db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    return services.CatalogService(db).authorities.list_all()


@app.post('/admin/health-authorities')
def create_health_authority(payload: HealthAuthorityIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).create_health_authority(payload.model_dump())
    except ValueError as e:
        raise _http_error(e)


@app.put('/admin/health-authorities/{authority_id}')
def update_health_authority(authority_id: int, payload: HealthAuthorityIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).update_health_authority(authority_id, payload.model_dump())
    except ValueError as e:
        raise _http_error(e)


@app.delete('/admin/health-authorities/{authority_id}')
def delete_health_authority(authority_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        services.CatalogService(db).delete_health_authority(authority_id)
    except ValueError as e:
        raise _http_error(e)
    return {'status': 'ok'}


@app.get('/admin/exams')
def admin_list_exams(db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """All exams (active or not) with their question counts."""
    return services.CatalogService(db).list_exams()


@app.post('/admin/exams')
def create_exam(payload: ExamIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """Create an exam, optionally with nested questions."""
    return services.CatalogService(db).create_exam(payload)


@app.put('/admin/exams/{exam_id}')
def update_exam(exam_id: int, payload: ExamUpdate, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).update_exam(exam_id, payload)
    except ValueError as e:
        raise _http_error(e)


@app.delete('/admin/exams/{exam_id}')
def delete_exam(exam_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """Delete an exam together with its questions, grants and attempts."""
    try:
        services.CatalogService(db).delete_exam(exam_id)
    except ValueError as e:
        raise _http_error(e)
    return {'status': 'ok'}


@app.get('/admin/exams/{exam_id}/questions')
def admin_list_questions(exam_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).list_questions(exam_id)
    except ValueError as e:
        raise _http_error(e)


@app.post('/admin/exams/{exam_id}/questions')
def add_question(exam_id: int, payload: QuestionIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).add_question(exam_id, payload)
    except ValueError as e:
        raise _http_error(e)


@app.post('/admin/exams/{exam_id}/questions/bulk')
def bulk_add_questions(exam_id: int, payload: List[QuestionIn], db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """Insert a JSON list of questions in one go."""
    try:
        created = services.CatalogService(db).bulk_add_questions(exam_id, payload)
    except ValueError as e:
        raise _http_error(e)
    return {'created': len(created)}


@app.post('/admin/exams/{exam_id}/questions/import')
def import_questions(exam_id: int, file: UploadFile = File(...), dry_run: bool = False, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """Upload a CSV or JSON question bank for an exam.

    Returns a JSON summary with the created count and per-row errors.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    if file.content_type and file.content_type not in QUESTION_UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail='unsupported content type')
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    try:
        return services.CatalogService(db).import_file(exam_id, content, file.filename, dry_run=dry_run)
    except ValueError as e:
        raise _http_error(e)


@app.put('/admin/questions/{question_id}')
def update_question(question_id: int, payload: QuestionIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        return services.CatalogService(db).update_question(question_id, payload)
    except ValueError as e:
        raise _http_error(e)


@app.delete('/admin/questions/{question_id}')
def delete_question(question_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        services.CatalogService(db).delete_question(question_id)
    except ValueError as e:
        raise _http_error(e)
    return {'status': 'ok'}


@app.get('/admin/exam-access')
def list_exam_access(db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    return services.CatalogService(db).list_grants()


@app.post('/admin/exam-access')
def create_exam_access(payload: ExamAccessIn, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    """Grant an exam to a user, a profession and/or a health authority."""
    try:
        return services.CatalogService(db).create_grant(payload)
    except ValueError as e:
        raise _http_error(e)


@app.delete('/admin/exam-access/{grant_id}')
def delete_exam_access(grant_id: int, db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    try:
        services.CatalogService(db).delete_grant(grant_id)
    except ValueError as e:
        raise _http_error(e)
    return {'status': 'ok'}


@app.get('/admin/stats')
def admin_stats(db: Session = Depends(get_session), admin: models.UserProfile = Depends(require_admin)):
    return services.CatalogService(db).stats()


# --- taking exams -----------------------------------------------------------

@app.get('/exams')
def available_exams(db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    """Active exams the caller has access to."""
    try:
        return services.ExamService(db).list_available(user.id)
    except ValueError as e:
        raise _http_error(e)


@app.get('/exams/{exam_id}/take')
def take_exam(exam_id: int, db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    """Start an attempt: returns a shuffled question set and a `delivery_id`.

    Questions already answered in earlier attempts are left out and the
    set is capped at the caller's remaining daily MCQ quota.
    """
    try:
        return services.ExamService(db).take_exam(user.id, exam_id)
    except ValueError as e:
        raise _http_error(e)


@app.post('/exams/{exam_id}/submit')
def submit_exam(exam_id: int, submission: SubmissionIn, db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    """Score a delivery and return the attempt with its metrics and review."""
    try:
        return services.ExamService(db).submit_exam(
            user.id, exam_id, submission.delivery_id, submission.answers, time_spent=submission.time_spent
        )
    except ValueError as e:
        raise _http_error(e)


@app.get('/attempts')
def list_attempts(exam_id: Optional[int] = None, db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    return services.ExamService(db).list_attempts(user.id, exam_id=exam_id)


@app.get('/attempts/{attempt_id}')
def review_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    try:
        return services.ExamService(db).review_attempt(user.id, attempt_id)
    except ValueError as e:
        raise _http_error(e)


@app.get('/dashboard')
def dashboard(db: Session = Depends(get_session), user: models.UserProfile = Depends(get_current_user)):
    """Profile, recent attempts and today's MCQ usage for the caller."""
    try:
        return services.ExamService(db).dashboard(user.id)
    except ValueError as e:
        raise _http_error(e)


def run():
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("licensing_exams.main:app", host=settings.HOST, port=settings.PORT)
