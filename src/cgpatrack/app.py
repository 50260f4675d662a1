import logging
from datetime import date
from typing import Dict, Iterator, List, Optional

from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cgpatrack.config.settings import settings
from cgpatrack.core.errors import ValidationError
from cgpatrack.core.gpa import compute_semester_gpa, round_gpa
from cgpatrack.core.grades import validate_scale, validate_subject_input
from cgpatrack.core.models import BUILTIN_MAX_POINT, GradeDefinition, GradingScale, ScaleKind, SubjectRecord
from cgpatrack.logging_config import setup_logging
from cgpatrack.services.gpa_service import GpaService
from cgpatrack.services.seed import seed_college_grades
from cgpatrack.services.storage import (
    ConflictError,
    NotFoundError,
    ScaleValidationError,
    Storage,
    StorageError,
    SubjectValidationError,
)
from cgpatrack.services.tokens import TOKEN_COOKIE, InvalidTokenError, issue_token, token_ttl, token_user_id

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="CGPA Tracker API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RegisterPayload(BaseModel):
    username: str = Field(min_length=3)
    email: str
    password: str = Field(min_length=6)
    college_id: Optional[int] = None


class LoginPayload(BaseModel):
    email: str
    password: str
    remember_me: bool = False


class ProfilePayload(BaseModel):
    college_id: int


class GradePayload(BaseModel):
    grade_letter: str = Field(min_length=1)
    grade_point: float
    min_percentage: float
    max_percentage: float

    def to_definition(self) -> GradeDefinition:
        return GradeDefinition(
            letter=self.grade_letter.strip(),
            point=self.grade_point,
            min_percentage=self.min_percentage,
            max_percentage=self.max_percentage,
        )


class CollegePayload(BaseModel):
    name: str = Field(min_length=1)
    grading_scale: ScaleKind = ScaleKind.TEN_POINT
    description: Optional[str] = None
    # Only for CUSTOM scales; built-in scales get their default grades.
    grades: List[GradePayload] = Field(default_factory=list)


class GradesPayload(BaseModel):
    grades: List[GradePayload] = Field(min_length=1)


class SemesterPayload(BaseModel):
    semester_number: int = Field(ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SemesterUpdatePayload(BaseModel):
    semester_number: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SubjectPayload(BaseModel):
    name: str
    credits: float
    grade_letter: Optional[str] = None
    grade_point: Optional[float] = None
    percentage: Optional[float] = None


class SubjectUpdatePayload(BaseModel):
    name: Optional[str] = None
    credits: Optional[float] = None
    grade_letter: Optional[str] = None
    grade_point: Optional[float] = None
    percentage: Optional[float] = None


def get_storage() -> Iterator[Storage]:
    store = Storage.from_settings()
    try:
        yield store
    finally:
        store.close()


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def _errors_response(errors: List[ValidationError]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"errors": [e.to_dict() for e in errors]},
    )


def _http_error(exc: StorageError) -> HTTPException:
    if isinstance(exc, (SubjectValidationError, ScaleValidationError)):
        logger.warning("Rejected input: %s", exc)
        return _errors_response(exc.errors)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def current_user_id(
    authorization: Optional[str] = Header(default=None),
    session_cookie: Optional[str] = Cookie(default=None, alias=TOKEN_COOKIE),
    store: Storage = Depends(get_storage),
) -> int:
    """Resolve the signed session token from the Authorization header, else the cookie."""
    token = session_cookie
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() != "bearer" or not credentials.strip():
            raise _unauthorized("Invalid Authorization header")
        token = credentials.strip()
    if not token:
        raise _unauthorized("Not authenticated")

    try:
        uid = token_user_id(token)
    except InvalidTokenError as exc:
        raise _unauthorized(str(exc)) from exc
    try:
        store.get_user(uid)
    except NotFoundError as exc:
        raise _unauthorized("Unknown user") from exc
    return uid


def _start_session(response: Response, user: Dict, remember_me: bool = False) -> Dict:
    token = issue_token(user["id"], remember_me)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=int(token_ttl(remember_me).total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
        path="/",
    )
    return {"uid": user["id"], "username": user["username"], "email": user["email"], "token": token}


def _with_gpa(semester: Dict) -> Dict:
    result = compute_semester_gpa(Storage.to_subject_record(s) for s in semester["subjects"])
    semester["sgpa"] = round_gpa(result.sgpa)
    semester["total_credits"] = result.total_credits
    return semester


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, response: Response, store: Storage = Depends(get_storage)) -> Dict:
    try:
        uid = store.create_user(payload.username, payload.email, payload.password, payload.college_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown college") from exc
    except StorageError as exc:
        raise _http_error(exc) from exc
    logger.info("Registered user %s", uid)
    return _start_session(response, store.get_user(uid))


@app.post("/auth/login")
def login(payload: LoginPayload, response: Response, store: Storage = Depends(get_storage)) -> Dict:
    uid = store.login_user(payload.email, payload.password)
    if uid is None:
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _start_session(response, store.get_user(uid), payload.remember_me)


@app.post("/auth/logout")
def logout(response: Response) -> Dict[str, str]:
    response.delete_cookie(TOKEN_COOKIE, path="/")
    return {"status": "logged out"}


@app.get("/users/me")
def get_me(uid: int = Depends(current_user_id), store: Storage = Depends(get_storage)) -> Dict:
    return store.get_user(uid)


@app.post("/users/me/profile")
def complete_profile(
    payload: ProfilePayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        store.complete_profile(uid, payload.college_id)
        return store.get_user(uid)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown college") from exc
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.get("/colleges")
def list_colleges(store: Storage = Depends(get_storage)) -> Dict[str, List[Dict]]:
    return {"colleges": store.list_colleges()}


@app.post("/colleges", status_code=status.HTTP_201_CREATED)
def create_college(payload: CollegePayload, store: Storage = Depends(get_storage)) -> Dict:
    existing = store.find_college_by_name(payload.name)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": "College already exists", "college": existing},
        )

    definitions = [grade.to_definition() for grade in payload.grades]
    if payload.grading_scale == ScaleKind.CUSTOM:
        if not definitions:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A CUSTOM grading scale needs grade definitions",
            )
        errors = validate_scale(GradingScale(ScaleKind.CUSTOM, definitions))
        if errors:
            raise _errors_response(errors)
        max_gpa = max(d.point for d in definitions)
    elif definitions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Grade definitions can only be supplied for a CUSTOM grading scale",
        )
    else:
        max_gpa = BUILTIN_MAX_POINT[payload.grading_scale]

    try:
        college_id = store.create_college(
            payload.name,
            payload.grading_scale,
            description=payload.description,
            max_gpa=max_gpa,
        )
        if definitions:
            store.add_grades(college_id, definitions)
        else:
            seed_college_grades(store, college_id, payload.grading_scale)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return {"college": store.get_college(college_id)}


@app.get("/colleges/{college_id}/grades")
def list_college_grades(college_id: int, store: Storage = Depends(get_storage)) -> Dict:
    try:
        college = store.get_college(college_id)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return {"college": college, "grades": store.list_grades(college_id)}


@app.post("/colleges/{college_id}/grades", status_code=status.HTTP_201_CREATED)
def add_college_grades(
    college_id: int,
    payload: GradesPayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        college = store.get_college(college_id)
        if college["grading_scale"] != ScaleKind.CUSTOM.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Built-in grading scales cannot be changed",
            )
        added = store.add_grades(college_id, [grade.to_definition() for grade in payload.grades])
    except StorageError as exc:
        raise _http_error(exc) from exc
    logger.info("User %s added %d grades to college %s", uid, added, college_id)
    return {"added": added, "grades": store.list_grades(college_id)}


@app.get("/semesters")
def list_semesters(
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> List[Dict]:
    return [_with_gpa(semester) for semester in store.list_semesters(uid)]


@app.post("/semesters", status_code=status.HTTP_201_CREATED)
def create_semester(
    payload: SemesterPayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        semester_id = store.create_semester(
            uid,
            payload.semester_number,
            start_date=payload.start_date.isoformat() if payload.start_date else None,
            end_date=payload.end_date.isoformat() if payload.end_date else None,
        )
        return _with_gpa(store.get_semester(uid, semester_id))
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.get("/semesters/{semester_id}")
def get_semester(
    semester_id: int,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        return _with_gpa(store.get_semester(uid, semester_id))
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.patch("/semesters/{semester_id}")
def update_semester(
    semester_id: int,
    payload: SemesterUpdatePayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    changes = payload.model_dump(exclude_unset=True)
    for key in ("start_date", "end_date"):
        if changes.get(key) is not None:
            changes[key] = changes[key].isoformat()
    try:
        store.update_semester(uid, semester_id, **changes)
        return _with_gpa(store.get_semester(uid, semester_id))
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.delete("/semesters/{semester_id}")
def delete_semester(
    semester_id: int,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict[str, str]:
    try:
        store.delete_semester(uid, semester_id)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.post("/semesters/{semester_id}/subjects", status_code=status.HTTP_201_CREATED)
def create_subject(
    semester_id: int,
    payload: SubjectPayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        subject_id = store.create_subject(
            uid,
            semester_id,
            **payload.model_dump(),
            allow_zero_credits=settings.allow_zero_credits,
        )
        return store.get_subject(uid, subject_id)
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.patch("/subjects/{subject_id}")
def update_subject(
    subject_id: int,
    payload: SubjectUpdatePayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        store.update_subject(
            uid,
            subject_id,
            allow_zero_credits=settings.allow_zero_credits,
            **payload.model_dump(exclude_unset=True),
        )
        return store.get_subject(uid, subject_id)
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.delete("/subjects/{subject_id}")
def delete_subject(
    subject_id: int,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict[str, str]:
    try:
        store.delete_subject(uid, subject_id)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _http_error(exc) from exc


@app.post("/subjects/validate")
def validate_subject(
    payload: SubjectPayload,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    errors = validate_subject_input(
        SubjectRecord(**payload.model_dump()),
        store.user_grading_scale(uid),
        allow_zero_credits=settings.allow_zero_credits,
    )
    return {"valid": not errors, "errors": [e.to_dict() for e in errors]}


@app.get("/semesters/{semester_id}/gpa")
def semester_gpa(
    semester_id: int,
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    try:
        result = GpaService(store).semester_gpa(uid, semester_id)
    except StorageError as exc:
        raise _http_error(exc) from exc
    payload = result.to_dict()
    payload["sgpa"] = round_gpa(result.sgpa)
    return payload


@app.get("/gpa")
def cumulative_gpa(
    uid: int = Depends(current_user_id),
    store: Storage = Depends(get_storage),
) -> Dict:
    result = GpaService(store).cumulative_gpa(uid)
    payload = result.to_dict()
    payload["cgpa"] = round_gpa(result.cgpa)
    for item in payload["semesterBreakdown"]:
        item["sgpa"] = round_gpa(item["sgpa"])
    return payload
