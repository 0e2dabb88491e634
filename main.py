import logging
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import SessionFactory, SessionLocal
from directory import user_directory_for
from reports import ReportEngine, build_report_engine, format_costs
from request_log import install_request_logging
from scheduler import SchedulerManager
from schemas import (
    ID_MAX,
    ID_MIN,
    CostIn,
    CostOut,
    LogOut,
    ReportOut,
    TeamMemberOut,
    UserDetailsOut,
    UserIn,
    UserOut,
)
from services import (
    CostService,
    InternalError,
    InvalidRequest,
    LogService,
    NotFound,
    UserDirectory,
    UserService,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

SERVICE_LABELS = {
    "all": "Cost Manager",
    "users": "Users",
    "costs": "Costs",
    "logs": "Logs",
    "admin": "Admin",
}

USER_FIELDS = ("id", "first_name", "last_name", "birthday")
COST_FIELDS = ("description", "category", "userid", "sum")


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_report_engine(db: Session = Depends(get_db)) -> ReportEngine:
    return build_report_engine(db)


def get_user_directory(request: Request, db: Session = Depends(get_db)) -> UserDirectory:
    return user_directory_for(db, request.app.state.settings)


def _missing(payload: dict[str, Any], fields: tuple[str, ...]) -> bool:
    return any(payload.get(field) in (None, "") for field in fields)


def _first_error(exc: ValidationError) -> tuple[str, str, str]:
    err = exc.errors()[0]
    field = str(err["loc"][0]) if err["loc"] else ""
    return field, err["type"], err["msg"]


def user_payload_from_body(payload: dict[str, Any]) -> UserIn:
    if _missing(payload, USER_FIELDS):
        raise InvalidRequest("Missing required fields")
    try:
        return UserIn.model_validate(payload)
    except ValidationError as exc:
        field, _, msg = _first_error(exc)
        if field == "id":
            raise InvalidRequest("ID must be a number") from exc
        raise InvalidRequest(f"Invalid {field}: {msg}") from exc


def cost_payload_from_body(payload: dict[str, Any]) -> CostIn:
    if _missing(payload, COST_FIELDS):
        raise InvalidRequest("Missing required fields")
    try:
        return CostIn.model_validate(payload)
    except ValidationError as exc:
        field, kind, msg = _first_error(exc)
        if field == "sum" and kind == "greater_than_equal":
            raise InvalidRequest("Sum cannot be negative") from exc
        if field in ("sum", "userid"):
            raise InvalidRequest("Sum and UserID must be numbers") from exc
        if field == "category":
            raise InvalidRequest(
                "Category must be one of: food, health, housing, sports, education"
            ) from exc
        raise InvalidRequest(f"Invalid {field}: {msg}") from exc


def cost_out(cost) -> CostOut:
    return CostOut(
        id=cost.id,
        description=cost.description,
        category=cost.category,
        userid=cost.user_id,
        sum=cost.sum,
        created_at=cost.created_at,
    )


def users_router(add_path: str) -> APIRouter:
    router = APIRouter()

    @router.post(add_path, status_code=201, response_model=UserOut)
    def api_add_user(payload: dict = Body(...), db: Session = Depends(get_db)):
        data = user_payload_from_body(payload)
        return UserService(db).create(data)

    @router.get("/api/users/{user_id}", response_model=UserDetailsOut)
    def api_user_details(
        user_id: int = Path(..., ge=ID_MIN, le=ID_MAX),
        db: Session = Depends(get_db),
    ):
        return UserService(db).details(user_id)

    @router.get("/api/users", response_model=list[UserOut])
    def api_users(db: Session = Depends(get_db)):
        return UserService(db).list_all()

    return router


def costs_router() -> APIRouter:
    router = APIRouter()

    @router.post("/api/add", status_code=201, response_model=CostOut)
    def api_add_cost(
        payload: dict = Body(...),
        db: Session = Depends(get_db),
        directory: UserDirectory = Depends(get_user_directory),
    ):
        data = cost_payload_from_body(payload)
        cost = CostService(db, directory).create(data)
        return cost_out(cost)

    @router.get("/api/report", response_model=ReportOut)
    def api_report(
        user_id: Optional[str] = Query(None, alias="id"),
        year: Optional[str] = None,
        month: Optional[str] = None,
        engine: ReportEngine = Depends(get_report_engine),
    ):
        report = engine.get_monthly_report(user_id, year, month)
        return {
            "userid": report.key.user_id,
            "year": report.key.year,
            "month": report.key.month,
            "costs": format_costs(report.costs),
        }

    return router


def logs_router() -> APIRouter:
    router = APIRouter()

    @router.get("/api/logs", response_model=list[LogOut])
    def api_logs(db: Session = Depends(get_db)):
        return LogService(db).list_all()

    return router


def admin_router(settings: Settings) -> APIRouter:
    router = APIRouter()

    @router.get("/api/about", response_model=list[TeamMemberOut])
    def api_about():
        return [
            {"first_name": first, "last_name": last} for first, last in settings.team
        ]

    return router


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(request: Request, exc: InvalidRequest):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": detail})

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError):
        logger.error(f"internal_error: path={request.url.path} error={exc}")
        return JSONResponse(status_code=500, content={"id": 1, "message": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"store_error: path={request.url.path} error={exc}")
        return JSONResponse(status_code=500, content={"id": 1, "message": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    settings = settings or get_settings()
    service = settings.service
    label = SERVICE_LABELS[service]

    app = FastAPI(title=f"{label} Service")
    app.state.settings = settings
    app.state.session_factory = session_factory or SessionLocal

    install_error_handlers(app)
    install_request_logging(app, label)

    if service == "users":
        app.include_router(users_router("/api/add"))
    if service == "all":
        app.include_router(users_router("/api/addusers"))
    if service in ("costs", "all"):
        app.include_router(costs_router())
    if service in ("logs", "all"):
        app.include_router(logs_router())
    if service in ("admin", "all"):
        app.include_router(admin_router(settings))

    @app.get("/", response_class=PlainTextResponse)
    def health():
        return f"{label} Service is UP"

    if settings.warm_reports and service in ("costs", "all"):
        scheduler_manager = SchedulerManager(app.state.session_factory)

        @app.on_event("startup")
        def startup_event():
            scheduler_manager.start()

        @app.on_event("shutdown")
        def shutdown_event():
            scheduler_manager.stop()

    return app


app = create_app()


def main():
    import uvicorn

    settings = get_settings()
    logger.info(f"Starting {SERVICE_LABELS[settings.service]} service on {settings.port}")
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=False)


if __name__ == "__main__":
    main()
