# Run:
# uvicorn services.family_connect.main:app --host 0.0.0.0 --port 5000 --reload
# Docs: http://127.0.0.1:5000/docs

import logging
import random
import re
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status

from common.auth.session import SessionManager, build_session_manager
from common.constants import (
    DEFAULT_CHECKIN_LIMIT,
    LOCATION_HISTORY_WINDOW,
    SESSION_COOKIE_NAME,
    SESSION_TTL,
)
from common.errors import (
    AuthenticationError,
    AuthorizationError,
    RecordNotFoundError,
    ValidationFailedError,
)
from common.storage import MemStorage, utcnow
from libs.audit_logger import write_audit
from libs.config import Config, config
from libs.fastapi_service import CORSMiddlewareConfig, FastAPIServiceFactory, ServiceAppConfig
from models.family_models import (
    CheckIn,
    CheckInBody,
    FamilyCheckIn,
    FamilyMember,
    InsertCheckIn,
    InsertLocation,
    InsertStatusUpdate,
    Location,
    LocationBody,
    PublicUser,
    StatusBody,
    StatusUpdate,
    User,
)
from services.family_connect.schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SimulatedCheckInResponse,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "family_connect"

_MEMBER_ID_RE = re.compile(r"[0-9]+")

router = APIRouter(prefix="/api")


# ========= Dependencies =========


def get_storage(request: Request) -> MemStorage:
    return request.app.state.storage


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_settings(request: Request) -> Config:
    return request.app.state.settings


def get_current_user(
    request: Request,
    storage: MemStorage = Depends(get_storage),
    sessions: SessionManager = Depends(get_sessions),
) -> User:
    """
    Resolve the session cookie to a user.

    A session whose user no longer exists is destroyed on the spot.
    """
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    user_id = sessions.get_user_id(sid)
    if user_id is None:
        raise AuthenticationError("Not authenticated")

    user = storage.get_user(user_id)
    if user is None:
        sessions.delete_session(sid)
        raise AuthenticationError("User not found")
    return user


def _count(request: Request, name: str) -> None:
    counter = request.app.state.counters.get(name)
    if counter is not None:
        counter.inc()


def _parse_member_id(raw: str) -> int:
    # ASCII digits only; int() alone also takes "+1", " 1" and non-ASCII digits
    if not _MEMBER_ID_RE.fullmatch(raw):
        raise ValidationFailedError("Invalid family member ID")
    return int(raw)


def _require_family_member(storage: MemStorage, user: User, member_id: int, what: str) -> None:
    if not storage.is_family_member(user.id, member_id):
        raise AuthorizationError(f"Not authorized to view this family member's {what}")


# ========= Auth =========


@router.post("/auth/login", response_model=LoginResponse, tags=["Auth"])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    storage: MemStorage = Depends(get_storage),
    sessions: SessionManager = Depends(get_sessions),
    settings: Config = Depends(get_settings),
):
    username = payload.username.strip()
    logger.info("Login attempt for username=%r from %s", username, request.client.host if request.client else "-")

    user = storage.get_user_by_username(username)
    if user is None or user.password != payload.password:
        _count(request, "login_failures_total")
        logger.info("Login failed for username=%r", username)
        raise AuthenticationError("Invalid username or password")

    # Never reuse a session id that existed before authentication
    sessions.delete_session(request.cookies.get(SESSION_COOKIE_NAME))
    sid = sessions.create_session(user.id)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=sid,
        max_age=SESSION_TTL,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
    )

    write_audit(
        storage=storage,
        event_type="authentication",
        message=f"{user.username} logged in",
        user_id=user.id,
    )
    return LoginResponse(**user.to_public().model_dump())


@router.post("/auth/logout", response_model=MessageResponse, tags=["Auth"])
def logout(
    request: Request,
    response: Response,
    storage: MemStorage = Depends(get_storage),
    sessions: SessionManager = Depends(get_sessions),
):
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    session = sessions.get_session(sid)
    if sessions.delete_session(sid) and session is not None:
        write_audit(
            storage=storage,
            event_type="authentication",
            message="logged out",
            user_id=session.get("user_id"),
        )
    response.delete_cookie(SESSION_COOKIE_NAME, httponly=True, samesite="lax")
    return MessageResponse(message="Logged out successfully")


@router.get("/auth/me", response_model=PublicUser, tags=["Auth"])
def me(user: User = Depends(get_current_user)):
    return user.to_public()


# ========= Status =========


@router.get("/status", response_model=StatusUpdate, tags=["Status"])
def get_status(
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    latest = storage.get_latest_status(user.id)
    if latest is None:
        raise RecordNotFoundError("No status found")
    return latest


@router.post(
    "/status",
    response_model=StatusUpdate,
    status_code=status.HTTP_201_CREATED,
    tags=["Status"],
)
def post_status(
    request: Request,
    payload: Optional[StatusBody] = None,
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    # an empty POST records the defaults
    body = payload if payload is not None else StatusBody()
    update = storage.create_status_update(
        InsertStatusUpdate(user_id=user.id, **body.model_dump())
    )
    if update.status == "emergency":
        _count(request, "emergency_status_total")
        write_audit(
            storage=storage,
            event_type="emergency",
            message=f"{user.name} raised an emergency (battery={update.battery_level})",
            user_id=user.id,
            event_id=update.id,
        )
    return update


# ========= Location =========


@router.get("/location", response_model=Location, tags=["Location"])
def get_location(
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    current = storage.get_location(user.id)
    if current is None:
        raise RecordNotFoundError("No location found")
    return current


@router.post(
    "/location",
    response_model=Location,
    status_code=status.HTTP_201_CREATED,
    tags=["Location"],
)
def post_location(
    payload: LocationBody,
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    return storage.create_location(InsertLocation(user_id=user.id, **payload.model_dump()))


@router.get("/location/history", response_model=List[Location], tags=["Location"])
def get_location_history(
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    end = utcnow()
    start = end - timedelta(seconds=LOCATION_HISTORY_WINDOW)
    return storage.get_locations_in_time_range(user.id, start, end)


# ========= Family =========


@router.get("/family", response_model=List[FamilyMember], tags=["Family"])
def get_family(
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    return storage.get_family_members(user.id)


@router.get("/family/{member_id}/location", response_model=Location, tags=["Family"])
def get_family_member_location(
    member_id: str,
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    target = _parse_member_id(member_id)
    _require_family_member(storage, user, target, "location")

    current = storage.get_location(target)
    if current is None:
        raise RecordNotFoundError("No location found for this family member")
    return current


@router.get("/family/{member_id}/check-in", response_model=List[CheckIn], tags=["Check-in"])
def get_family_member_check_ins(
    member_id: str,
    limit: int = Query(DEFAULT_CHECKIN_LIMIT, ge=1, le=100),
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    target = _parse_member_id(member_id)
    _require_family_member(storage, user, target, "check-ins")
    return storage.get_recent_check_ins(target, limit)


@router.get("/family-checkins", response_model=List[FamilyCheckIn], tags=["Check-in"])
def get_family_check_ins(
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    return storage.get_family_check_ins(user.id)


# ========= Check-in =========


@router.post(
    "/check-in",
    response_model=CheckIn,
    status_code=status.HTTP_201_CREATED,
    tags=["Check-in"],
)
def post_check_in(
    request: Request,
    payload: Optional[CheckInBody] = None,
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    body = payload if payload is not None else CheckInBody()
    check_in = storage.create_check_in(InsertCheckIn(user_id=user.id, **body.model_dump()))
    _count(request, "check_ins_total")
    if check_in.mood == "not_great":
        write_audit(
            storage=storage,
            event_type="check_in",
            message=f"{user.name} checked in feeling not great",
            user_id=user.id,
            event_id=check_in.id,
        )
    return check_in


@router.get("/check-in", response_model=List[CheckIn], tags=["Check-in"])
def get_check_ins(
    limit: int = Query(DEFAULT_CHECKIN_LIMIT, ge=1, le=100),
    user: User = Depends(get_current_user),
    storage: MemStorage = Depends(get_storage),
):
    return storage.get_recent_check_ins(user.id, limit)


# ========= Demo =========


@router.get("/simulate-checkin", response_model=SimulatedCheckInResponse, tags=["Demo"])
def simulate_check_in(
    request: Request,
    username: str = Query("martha"),
    storage: MemStorage = Depends(get_storage),
    settings: Config = Depends(get_settings),
):
    """
    Post a check-in, an "ok" status and a slightly moved location for a
    sample user, as if their phone had checked in.
    """
    if not settings.ENABLE_DEMO_ENDPOINTS:
        raise RecordNotFoundError("Not found")

    user = storage.get_user_by_username(username)
    if user is None:
        raise RecordNotFoundError(f"User {username} not found")

    check_in = storage.create_check_in(
        InsertCheckIn(
            user_id=user.id,
            mood="good",
            message="I'm doing fine today! Just wanted to let you know I'm safe.",
        )
    )
    _count(request, "check_ins_total")
    update = storage.create_status_update(
        InsertStatusUpdate(user_id=user.id, status="ok", battery_level=random.randint(70, 99))
    )

    moved: Optional[Location] = None
    current = storage.get_location(user.id)
    if current is not None:
        lat = float(current.latitude) + random.uniform(-0.005, 0.005)
        lon = float(current.longitude) + random.uniform(-0.005, 0.005)
        moved = storage.create_location(
            InsertLocation(
                user_id=user.id,
                latitude=f"{lat:.6f}",
                longitude=f"{lon:.6f}",
                address=current.address,
            )
        )

    logger.info("Simulated check-in for %s", user.username)
    return SimulatedCheckInResponse(
        message=f"{user.name} has successfully checked in!",
        check_in=check_in,
        status=update,
        location=moved,
    )


# ========= App =========


def create_app(
    storage: Optional[MemStorage] = None,
    sessions: Optional[SessionManager] = None,
    settings: Config = config,
) -> FastAPI:
    """
    Build the API around an explicitly owned repository and session manager.

    Without ``storage`` a fresh repository is created (and seeded when
    SEED_SAMPLE_DATA is on).
    """
    factory = FastAPIServiceFactory(
        ServiceAppConfig(
            title="Family Connect API",
            description=(
                "Family safety check-ins: share location and battery status, "
                "post check-ins, follow family members and raise emergencies."
            ),
            service_name=SERVICE_NAME,
            cors_config=CORSMiddlewareConfig(allow_origins=settings.CORS_ALLOW_ORIGINS),
        )
    )
    app = factory.create_app()

    if storage is None:
        storage = MemStorage()
        if settings.SEED_SAMPLE_DATA:
            storage.seed_sample_data()

    app.state.storage = storage
    app.state.sessions = sessions or build_session_manager(settings)
    app.state.settings = settings
    app.state.counters = {
        "check_ins_total": factory.add_business_metric(
            "check_ins_total", "Total check-ins posted"
        ),
        "emergency_status_total": factory.add_business_metric(
            "emergency_status_total", "Total emergency status updates"
        ),
        "login_failures_total": factory.add_business_metric(
            "login_failures_total", "Total failed login attempts"
        ),
    }

    app.include_router(router)

    @app.get("/")
    async def root():
        return {"service": SERVICE_NAME, "status": "running"}

    return app


app = create_app()
