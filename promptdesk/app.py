"""FastAPI application for the PromptDesk generation server.

Routes:
- ``GET /ping`` -- unauthenticated heartbeat
- ``GET /api/apps/{prompt_id}`` and ``POST /api/apps/{prompt_id}/generate``
  -- public app surface; exposes only name, description and variables
- everything else under ``/api`` requires an organization API key in the
  ``X-API-Key`` header: generation, execution logs, tenant variables and
  key rotation

Both generation routes call the orchestrator in-process and relay its
``{status, message, error}`` result verbatim, with the HTTP status set to
``status``.
"""

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from promptdesk.audit import JsonlLogStore, LogNotFound
from promptdesk.auth import AuthenticationError, validate_api_key
from promptdesk.catalog import load_catalog
from promptdesk.config import PromptDeskConfig, load_config
from promptdesk.entities import GenerationResult, LogEntry
from promptdesk.models import (
    AppGenerateRequest,
    AppInfo,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    KeyRotationRequest,
    KeyRotationResponse,
    LogEntryView,
    LogListResponse,
    VariablesBody,
)
from promptdesk.orchestrator import Orchestrator
from promptdesk.provider import ProviderClient
from promptdesk.stores import (
    KeyRotationError,
    ModelStore,
    OrganizationStore,
    PromptStore,
    VariableStore,
)
from promptdesk.telemetry import setup_logging

CONFIG_PATH = os.getenv("PROMPTDESK_CONFIG", "config/example.config.json")


@dataclass
class Stores:
    """The collaborator stores backing one server instance."""

    organizations: OrganizationStore
    models: ModelStore
    prompts: PromptStore
    variables: VariableStore


_config: Optional[PromptDeskConfig] = None
_stores: Optional[Stores] = None
_log_store: Optional[JsonlLogStore] = None
_provider: Optional[ProviderClient] = None
_orchestrator: Optional[Orchestrator] = None


def get_config() -> PromptDeskConfig:
    """Return the loaded server configuration (lazy-init)."""
    global _config
    if _config is None:
        _config = load_config(CONFIG_PATH)
    return _config


def get_stores() -> Stores:
    """Return the stores, seeded from the catalog file if one is configured."""
    global _stores
    if _stores is None:
        stores = Stores(
            organizations=OrganizationStore(),
            models=ModelStore(),
            prompts=PromptStore(),
            variables=VariableStore(),
        )
        cfg = get_config()
        if cfg.catalog_file:
            load_catalog(cfg.catalog_file).populate(
                stores.organizations, stores.models, stores.prompts, stores.variables
            )
        _stores = stores
    return _stores


def get_log_store() -> JsonlLogStore:
    """Return the execution log store (lazy-init from config)."""
    global _log_store
    if _log_store is None:
        _log_store = JsonlLogStore(get_config().generation_log_file)
    return _log_store


def get_orchestrator() -> Orchestrator:
    """Return the generation orchestrator (lazy-init)."""
    global _orchestrator
    if _orchestrator is None:
        stores = get_stores()
        _orchestrator = Orchestrator(
            log_sink=get_log_store(),
            secrets=stores.organizations,
            provider=_provider,
            variables=stores.variables,
            prompts=stores.prompts,
            models=stores.models,
            default_timeout=get_config().default_timeout_seconds,
        )
    return _orchestrator


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Initialize config, logging, stores and the orchestrator on startup."""
    cfg = get_config()
    setup_logging(cfg.log_file, cfg.log_level)
    get_orchestrator()
    yield


app = FastAPI(title="PromptDesk", version="0.3.0", lifespan=lifespan)


def _error_response(status: int, message: str) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = ErrorResponse(message=message)
    return JSONResponse(status_code=status, content=body.model_dump())


def _result_response(result: GenerationResult) -> JSONResponse:
    body = GenerateResponse(**result.to_response())
    return JSONResponse(status_code=result.status, content=body.model_dump())


def _log_view(entry: LogEntry) -> LogEntryView:
    return LogEntryView(**entry.to_dict())


async def require_tenant(x_api_key: Optional[str] = Header(default=None)) -> str:
    """Resolve the caller's organization from the X-API-Key header."""
    cfg = get_config()
    if not cfg.auth.enabled:
        return cfg.auth.default_organization
    return validate_api_key(x_api_key, get_stores().organizations.key_hashes())


@app.exception_handler(AuthenticationError)
async def authentication_exception_handler(
    request: Request, exc: AuthenticationError
) -> JSONResponse:
    return _error_response(401, exc.detail)


@app.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "pong"


# --- Public app surface ---


@app.get("/api/apps/{prompt_id}", response_model=None)
async def app_info(prompt_id: str) -> JSONResponse:
    """Describe a public prompt without revealing its model or mappings."""
    prompt = get_stores().prompts.find_public_prompt(prompt_id)
    if prompt is None:
        return _error_response(404, "App not found.")
    info = AppInfo(
        id=prompt.id,
        name=prompt.name,
        description=prompt.description,
        variables=prompt.prompt_variables,
    )
    return JSONResponse(status_code=200, content=info.model_dump())


@app.post("/api/apps/{prompt_id}/generate", response_model=None)
async def app_generate(prompt_id: str, body: AppGenerateRequest) -> JSONResponse:
    """Generate from a public prompt under the prompt's own organization."""
    prompt = get_stores().prompts.find_public_prompt(prompt_id)
    if prompt is None:
        return _error_response(404, "App not found.")
    result = await get_orchestrator().generate_for(
        prompt.id, None, body.variables, prompt.organization_id
    )
    return _result_response(result)


# --- Authenticated API ---


@app.get("/api/ping", response_class=PlainTextResponse)
async def api_ping(tenant: str = Depends(require_tenant)) -> str:
    return "pong"


@app.post("/api/generate", response_model=None)
async def generate(
    body: GenerateRequest, tenant: str = Depends(require_tenant)
) -> JSONResponse:
    """Run one generation attempt and relay its outcome."""
    result = await get_orchestrator().generate_for(
        body.prompt_id, body.model_id, body.variables, tenant, timeout=body.timeout
    )
    return _result_response(result)


@app.get("/api/logs", response_model=None)
async def list_logs(tenant: str = Depends(require_tenant)) -> JSONResponse:
    entries = get_log_store().list_entries(tenant)
    body = LogListResponse(logs=[_log_view(entry) for entry in entries])
    return JSONResponse(status_code=200, content=body.model_dump())


@app.get("/api/logs/{log_id}", response_model=None)
async def get_log(log_id: str, tenant: str = Depends(require_tenant)) -> JSONResponse:
    try:
        entry = get_log_store().get(log_id, tenant)
    except LogNotFound as exc:
        return _error_response(404, str(exc))
    return JSONResponse(status_code=200, content=_log_view(entry).model_dump())


@app.delete("/api/logs/{log_id}", response_model=None)
async def delete_log(
    log_id: str, tenant: str = Depends(require_tenant)
) -> JSONResponse:
    """Soft-delete a log entry. The record itself is kept."""
    try:
        entry = get_log_store().soft_delete(log_id, tenant)
    except LogNotFound as exc:
        return _error_response(404, str(exc))
    return JSONResponse(status_code=200, content=_log_view(entry).model_dump())


@app.get("/api/variables", response_model=None)
async def get_variables(tenant: str = Depends(require_tenant)) -> JSONResponse:
    body = VariablesBody(variables=get_stores().variables.get(tenant))
    return JSONResponse(status_code=200, content=body.model_dump())


@app.put("/api/variables", response_model=None)
async def put_variables(
    body: VariablesBody, tenant: str = Depends(require_tenant)
) -> JSONResponse:
    stored = get_stores().variables.upsert(tenant, body.variables)
    return JSONResponse(
        status_code=200, content=VariablesBody(variables=stored).model_dump()
    )


@app.post("/api/organization/keys", response_model=None)
async def rotate_key(
    body: KeyRotationRequest, tenant: str = Depends(require_tenant)
) -> JSONResponse:
    """Issue a new organization API key; the raw key is shown only here."""
    try:
        raw_key, issued = get_stores().organizations.rotate_key(
            tenant, description=body.description, index=body.index
        )
    except KeyRotationError as exc:
        return _error_response(400, exc.detail)
    content = KeyRotationResponse(key=raw_key, description=issued.description)
    return JSONResponse(status_code=200, content=content.model_dump())


@app.api_route(
    "/api/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    response_model=None,
)
async def api_not_found(path: str) -> JSONResponse:
    return _error_response(404, "API not found!")


@app.exception_handler(422)
async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Convert FastAPI's validation errors into our error envelope format."""
    return _error_response(
        422,
        "Request validation failed: {}".format(exc),
    )
