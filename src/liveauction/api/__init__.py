"""HTTP and WebSocket surface for the live auction."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from contextlib import asynccontextmanager
from typing import Any, List, TypeVar

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError

from liveauction.api.realtime import register_realtime
from liveauction.api.schemas import (
    AssignRequest,
    AssignmentResponse,
    AuditResponse,
    PlayerDeletedResponse,
    PlayerUpdateRequest,
    ResetResponse,
    TeamResultResponse,
    TeamUpdateRequest,
)
from liveauction.broadcast import Publisher, RoomHub
from liveauction.config import AuctionSettings, load_settings
from liveauction.engine import AssignmentEngine, PlayerDraft, TeamDraft, TeamPatch
from liveauction.errors import (
    AccessDenied,
    AuctionError,
    AuctionValidationError,
    ConflictError,
    NotFoundError,
    TeamNotEmpty,
)
from liveauction.forms import FormSchemaRegistry
from liveauction.media import LocalMediaStore, MediaStore, Upload
from liveauction.models import CustomFields, PlayerRecord, PlayerStatus, TeamRecord
from liveauction.persistence import AuctionStore
from liveauction.tenancy import (
    HeaderPrincipalResolver,
    PrincipalResolver,
    RegistrationDirectory,
    StaticRegistrationDirectory,
    TenantScope,
)


logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_STATUS_BY_ERROR: list[tuple[type[AuctionError], int]] = [
    (AuctionValidationError, 400),
    (AccessDenied, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (TeamNotEmpty, 409),
]


def _status_for(exc: AuctionError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "invalid value"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def _parse_custom_fields(raw: str | None) -> CustomFields:
    if not raw:
        return CustomFields()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid custom_fields JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="custom_fields must be a JSON object")
    try:
        return CustomFields.from_form(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _read_upload(upload: UploadFile | None) -> Upload | None:
    if upload is None or not upload.filename:
        return None
    contents = upload.file.read()
    if not contents:
        return None
    return Upload(data=contents, filename=upload.filename, content_type=upload.content_type)


def _build(model_cls: type[_ModelT], **values: Any) -> _ModelT:
    try:
        return model_cls(**values)
    except ValidationError as exc:
        raise AuctionValidationError(str(exc)) from exc


def _parse_budget(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Budget must be a number") from exc
    if value < 0:
        raise HTTPException(status_code=400, detail="Budget cannot be negative")
    return value


def create_app(
    settings: AuctionSettings | None = None,
    *,
    store: AuctionStore | None = None,
    publisher: Publisher | None = None,
    media: MediaStore | None = None,
    resolver: PrincipalResolver | None = None,
    registrations: RegistrationDirectory | None = None,
    form_schemas: FormSchemaRegistry | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    store = store or AuctionStore(settings.db_path, busy_timeout=settings.busy_timeout)
    hub = publisher if isinstance(publisher, RoomHub) else RoomHub()
    if media is None:
        settings.media_dir.mkdir(parents=True, exist_ok=True)
        media = LocalMediaStore(settings.media_dir, settings.media_base_url)
    resolver = resolver or HeaderPrincipalResolver()
    registrations = registrations or StaticRegistrationDirectory(settings.registration_tokens)
    if form_schemas is None and settings.form_schema_dir is not None:
        form_schemas = FormSchemaRegistry.load_dir(settings.form_schema_dir)
    engine = AssignmentEngine(
        store,
        publisher or hub,
        media=media,
        form_schemas=form_schemas,
        registrations=registrations,
        rng=rng,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        hub.bind_loop(asyncio.get_running_loop())
        yield

    app = FastAPI(title="liveauction", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.engine = engine
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if isinstance(media, LocalMediaStore) and settings.media_base_url.startswith("/"):
        app.mount(
            settings.media_base_url,
            StaticFiles(directory=media.root, check_dir=False),
            name="media",
        )

    @app.exception_handler(AuctionError)
    async def auction_error_handler(request: Request, exc: AuctionError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 409:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": _describe_validation(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    def scope_of(request: Request) -> TenantScope:
        principal = resolver.resolve(request.headers, request.query_params)
        if principal is None:
            raise AccessDenied("Authentication required")
        return TenantScope(principal)

    register_realtime(app, hub, resolver)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # players -------------------------------------------------------------------

    @app.post("/api/players/register", response_model=PlayerRecord, status_code=201)
    def register_player(
        token: str = Form(...),
        name: str = Form(...),
        reg_no: str | None = Form(None),
        player_class: str | None = Form(None),
        position: str | None = Form(None),
        custom_fields: str | None = Form(None),
        photo: UploadFile | None = File(None),
    ):
        draft = _build(
            PlayerDraft,
            name=name,
            reg_no=reg_no,
            player_class=player_class,
            position=position,
            custom_fields=_parse_custom_fields(custom_fields),
        )
        return engine.register_player(token, draft, _read_upload(photo))

    @app.get("/api/players/random", response_model=PlayerRecord)
    def random_player(request: Request):
        return engine.random_available_player(scope_of(request))

    @app.get("/api/players/unsold", response_model=List[PlayerRecord])
    def unsold_players(request: Request):
        return engine.list_unsold(scope_of(request))

    @app.get("/api/players", response_model=List[PlayerRecord])
    def list_players(request: Request, status: PlayerStatus | None = None):
        return engine.list_players(scope_of(request), status=status)

    @app.post("/api/players", response_model=PlayerRecord, status_code=201)
    def create_player(
        request: Request,
        background_tasks: BackgroundTasks,
        name: str = Form(...),
        reg_no: str | None = Form(None),
        player_class: str | None = Form(None),
        position: str | None = Form(None),
        custom_fields: str | None = Form(None),
        photo: UploadFile | None = File(None),
    ):
        scope = scope_of(request)
        draft = _build(
            PlayerDraft,
            name=name,
            reg_no=reg_no,
            player_class=player_class,
            position=position,
            custom_fields=_parse_custom_fields(custom_fields),
        )
        upload = _read_upload(photo)
        player = engine.create_player(scope, draft)
        if upload is not None:
            background_tasks.add_task(engine.attach_photo, scope.tenant_id, player.player_id, upload)
        return player

    @app.get("/api/players/{player_id}", response_model=PlayerRecord)
    def get_player(request: Request, player_id: str):
        return engine.get_player(scope_of(request), player_id)

    @app.post("/api/players/{player_id}/assign", response_model=AssignmentResponse)
    def assign_player(request: Request, player_id: str, payload: AssignRequest):
        if not payload.team_id:
            raise AuctionValidationError("Team is required")
        result = engine.assign(scope_of(request), player_id, payload.team_id, payload.amount)
        return AssignmentResponse.from_result(result)

    @app.post("/api/players/{player_id}/unsold", response_model=AssignmentResponse)
    def mark_unsold(request: Request, player_id: str):
        return AssignmentResponse.from_result(engine.mark_unsold(scope_of(request), player_id))

    @app.delete("/api/players/{player_id}/remove-from-team", response_model=AssignmentResponse)
    def remove_from_team(request: Request, player_id: str):
        return AssignmentResponse.from_result(engine.remove_from_team(scope_of(request), player_id))

    @app.api_route("/api/players/{player_id}", methods=["PATCH", "PUT"], response_model=PlayerRecord)
    def update_player(request: Request, player_id: str, payload: PlayerUpdateRequest):
        return engine.update_player(scope_of(request), player_id, payload.to_patch())

    @app.delete("/api/players/{player_id}", response_model=PlayerDeletedResponse)
    def delete_player(request: Request, player_id: str):
        team = engine.delete_player(scope_of(request), player_id)
        return PlayerDeletedResponse(player_id=player_id, refunded_team=team)

    # teams ---------------------------------------------------------------------

    @app.post("/api/teams", response_model=TeamRecord, status_code=201)
    def create_team(
        request: Request,
        name: str = Form(...),
        total_slots: int = Form(...),
        budget: str | None = Form(None),
        logo: UploadFile | None = File(None),
    ):
        scope = scope_of(request)
        if total_slots < 1:
            raise AuctionValidationError("Total slots must be at least 1")
        draft = _build(TeamDraft, name=name, total_slots=total_slots, budget=_parse_budget(budget))
        return engine.create_team(scope, draft, _read_upload(logo))

    @app.get("/api/teams", response_model=List[TeamRecord])
    def list_teams(request: Request):
        return engine.list_teams(scope_of(request))

    @app.get("/api/teams/results/final", response_model=List[TeamResultResponse])
    def final_results(request: Request):
        return [TeamResultResponse.from_result(result) for result in engine.final_results(scope_of(request))]

    @app.get("/api/teams/{team_id}", response_model=TeamRecord)
    def get_team(request: Request, team_id: str):
        return engine.get_team(scope_of(request), team_id)

    @app.patch("/api/teams/{team_id}", response_model=TeamRecord)
    def patch_team(request: Request, team_id: str, payload: TeamUpdateRequest):
        return engine.update_team(scope_of(request), team_id, payload.to_patch())

    @app.put("/api/teams/{team_id}", response_model=TeamRecord)
    def replace_team(
        request: Request,
        team_id: str,
        name: str | None = Form(None),
        total_slots: int | None = Form(None),
        budget: str | None = Form(None),
        logo: UploadFile | None = File(None),
    ):
        scope = scope_of(request)
        if total_slots is not None and total_slots < 1:
            raise AuctionValidationError("Total slots must be at least 1")
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if total_slots is not None:
            changes["total_slots"] = total_slots
        if budget is not None:
            changes["budget"] = _parse_budget(budget)
        return engine.update_team(scope, team_id, _build(TeamPatch, **changes), _read_upload(logo))

    @app.delete("/api/teams/{team_id}")
    def delete_team(request: Request, team_id: str) -> dict[str, str]:
        engine.delete_team(scope_of(request), team_id)
        return {"message": "Team deleted successfully"}

    # auction -------------------------------------------------------------------

    @app.post("/api/auction/reset", response_model=ResetResponse)
    def reset_auction(request: Request):
        summary = engine.reset_all(scope_of(request))
        return ResetResponse(players_deleted=summary.players_deleted, teams_deleted=summary.teams_deleted)

    @app.get("/api/auction/audit", response_model=AuditResponse)
    def audit_auction(request: Request):
        return AuditResponse.from_violations(engine.audit_tenant(scope_of(request)))

    return app


__all__ = ["create_app"]
