from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import JSONResponse, Response

from userbase.bootstrap.orchestrator import bootstrap
from userbase.bootstrap.results import BootstrapStatus
from userbase.bootstrap.storage import SqlAlchemyStorage, Storage, build_alembic_config
from userbase.config import settings
from userbase.db import dispose_engine, get_engine, get_session
from userbase.logging import configure_logging
from userbase.metrics import API_REQUESTS
from userbase.repo.users import UserRepository
from userbase.schemas import CountResponse, CreateUserRequest, HealthResponse, HelloResponse, User

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level, json=settings.log_json)
    app.state.bootstrap = None
    if settings.bootstrap_on_startup:
        # Fail-open: the report is kept, the server starts either way.
        app.state.bootstrap = await bootstrap(settings)
    log.info("api_starting", app=settings.app_name, health="/health", api="/api")
    yield
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.bootstrap = None
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_storage() -> Storage:
    return SqlAlchemyStorage(
        get_engine(),
        build_alembic_config(settings),
        history_table=settings.migration_history_table,
        schema=settings.db_schema,
    )


async def get_users() -> AsyncIterator[UserRepository]:
    async with get_session() as session:
        yield UserRepository(session)


async def _db_healthy(storage: Storage) -> bool:
    try:
        await storage.ping(settings.db_probe_timeout_s)
        return True
    except Exception as e:
        log.warning("db_health_check_failed", error=str(e))
        return False


@app.get("/api/hello")
async def hello() -> str:
    API_REQUESTS.labels("/api/hello").inc()
    return "Hello, World!"


@app.get("/api/hello.json", response_model=HelloResponse)
async def hello_json(storage: Storage = Depends(get_storage)) -> HelloResponse:
    API_REQUESTS.labels("/api/hello.json").inc()
    return HelloResponse(message="Hello, World!", database_healthy=await _db_healthy(storage))


@app.get("/api/health", response_model=HealthResponse)
@app.get("/api/health.json", response_model=HealthResponse)
async def api_health(storage: Storage = Depends(get_storage)) -> HealthResponse:
    API_REQUESTS.labels("/api/health").inc()
    healthy = await _db_healthy(storage)
    info = None
    if healthy:
        try:
            s = await storage.server_info(settings.db_probe_timeout_s)
            info = f"Database: {s.get('database')}, Server: {s.get('server')}, Version: {s.get('version')}"
        except Exception as e:
            log.warning("db_info_unavailable", error=str(e))
    return HealthResponse.from_check(healthy, info)


@app.get("/api/users", response_model=list[User])
@app.get("/api/users.json", response_model=list[User])
async def list_users(users: UserRepository = Depends(get_users)) -> list[User]:
    API_REQUESTS.labels("/api/users").inc()
    return await users.list_all()


@app.get("/api/users/count", response_model=CountResponse)
@app.get("/api/users/count.json", response_model=CountResponse)
async def count_users(users: UserRepository = Depends(get_users)) -> CountResponse:
    API_REQUESTS.labels("/api/users/count").inc()
    return CountResponse(count=await users.count())


# The .json twin is registered first so "{user_id}" never sees "5.json".
@app.get("/api/users/{user_id}", response_model=User)
@app.get("/api/users/{user_id}.json", response_model=User)
async def get_user(user_id: int, users: UserRepository = Depends(get_users)) -> User:
    API_REQUESTS.labels("/api/users/{user_id}").inc()
    user = await users.get_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@app.post("/api/users", response_model=User, status_code=status.HTTP_201_CREATED)
@app.post("/api/users.json", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(req: CreateUserRequest, users: UserRepository = Depends(get_users)) -> User:
    API_REQUESTS.labels("/api/users[POST]").inc()
    if not req.username or not req.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and email are required")
    if await users.username_exists(req.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")
    if await users.email_exists(req.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    user = await users.create(req.username, req.email)
    log.info("user_created", user_id=user.id, username=user.username)
    return user


@app.get("/health")
async def health(request: Request, storage: Storage = Depends(get_storage)) -> JSONResponse:
    """Readiness: live database ping plus the outcome of the startup run."""
    API_REQUESTS.labels("/health").inc()
    report = request.app.state.bootstrap
    db_ok = await _db_healthy(storage)

    degraded_reasons: list[str] = []
    if not db_ok:
        degraded_reasons.append("db_unhealthy")
    if report is None:
        if settings.bootstrap_on_startup:
            degraded_reasons.append("bootstrap_not_run")
    elif report.status is not BootstrapStatus.READY:
        degraded_reasons.append(f"bootstrap_{report.status.value}")

    payload = {
        "status": "degraded" if degraded_reasons else "ok",
        "degraded_reasons": degraded_reasons,
        "checks": {
            "database": "healthy" if db_ok else "unhealthy",
            "bootstrap": report.to_dict() if report is not None else None,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(payload, status_code=503 if degraded_reasons else 200)


@app.get("/metrics")
async def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
