"""
HTTP surface for the Envelope Budget API (FastAPI).

Routes live under `Settings.api_prefix` (default `/api`):

    GET    /envelopes?all=1             list envelopes (active only unless all=1)
    POST   /envelopes                   create an envelope
    DELETE /envelopes/{id}[?hard=1]     soft delete, or hard delete with cascade
    PATCH  /envelopes/{id}/restore      undo a soft delete
    POST   /transactions                post a transaction
    GET    /transactions                list transactions with filters
    GET    /health                      liveness probe

Endpoints are plain `def` functions; FastAPI runs them in its threadpool, so
each request holds its own pooled connection for its unit of work.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from envelope_budget import __version__
from envelope_budget.config import Settings, get_settings
from envelope_budget.domain.models import EnvelopeCreate, TransactionCreate
from envelope_budget.errors import (
    BudgetError,
    ConflictTimeoutError,
    InsufficientFundsError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from envelope_budget.services.ledger import LedgerEngine
from envelope_budget.services.registry import EnvelopeRegistry
from envelope_budget.store import build_store
from envelope_budget.store.abstract import Store
from envelope_budget.utils.logging import get_logger

log = get_logger(__name__)

_STATUS_BY_ERROR = {
    ValidationError: 400,
    InsufficientFundsError: 400,
    NotFoundError: 404,
    ConflictTimeoutError: 409,
    StoreError: 500,
}

_TRUTHY = {"1", "true", "yes"}


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _flag(value: Optional[str]) -> bool:
    return value is not None and value.lower() in _TRUTHY


def _limit(value: Optional[str]) -> Optional[int]:
    """A blank `limit=` counts as missing, so the default limit applies."""
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"limit: not a valid integer: {value!r}") from None


def get_registry(request: Request) -> EnvelopeRegistry:
    return request.app.state.registry


def get_ledger(request: Request) -> LedgerEngine:
    return request.app.state.ledger


def _bind_store(app: FastAPI, store: Store, settings: Settings) -> None:
    app.state.store = store
    app.state.registry = EnvelopeRegistry(store)
    app.state.ledger = LedgerEngine(store, settings)


def build_router(settings: Settings) -> APIRouter:
    router = APIRouter(prefix=settings.api_prefix.rstrip("/"))

    @router.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__}

    @router.get("/envelopes")
    def list_envelopes(
        include_all: Optional[str] = Query(None, alias="all"),
        registry: EnvelopeRegistry = Depends(get_registry),
    ) -> List[Dict[str, Any]]:
        return [_dump(env) for env in registry.list_envelopes(include_inactive=_flag(include_all))]

    @router.post("/envelopes", status_code=201)
    def create_envelope(
        payload: EnvelopeCreate,
        registry: EnvelopeRegistry = Depends(get_registry),
    ) -> JSONResponse:
        envelope = registry.add(payload)
        return JSONResponse(status_code=201, content=_dump(envelope))

    @router.delete("/envelopes/{envelope_id}")
    def delete_envelope(
        envelope_id: int,
        hard: Optional[str] = Query(None),
        registry: EnvelopeRegistry = Depends(get_registry),
    ) -> Dict[str, Any]:
        if _flag(hard):
            deleted = registry.hard_delete(envelope_id)
            return {"ok": True, "mode": "hard", "deleted": deleted}
        envelope = registry.soft_delete(envelope_id)
        return {"ok": True, "mode": "soft", "envelope": _dump(envelope)}

    @router.patch("/envelopes/{envelope_id}/restore")
    def restore_envelope(
        envelope_id: int,
        registry: EnvelopeRegistry = Depends(get_registry),
    ) -> Dict[str, Any]:
        envelope = registry.restore(envelope_id)
        return {"ok": True, "envelope": _dump(envelope)}

    @router.post("/transactions", status_code=201)
    def post_transaction(
        payload: TransactionCreate,
        ledger: LedgerEngine = Depends(get_ledger),
    ) -> JSONResponse:
        result = ledger.post(payload)
        return JSONResponse(status_code=201, content=_dump(result))

    @router.get("/transactions")
    def list_transactions(
        envelope_id: Optional[int] = Query(None, alias="envelopeId"),
        who: Optional[str] = Query(None),
        from_: Optional[datetime] = Query(None, alias="from"),
        to: Optional[datetime] = Query(None),
        limit: Optional[str] = Query(None),
        ledger: LedgerEngine = Depends(get_ledger),
    ) -> List[Dict[str, Any]]:
        transactions = ledger.list_transactions(
            envelope_id=envelope_id, who=who, from_=from_, to=to, limit=_limit(limit)
        )
        return [_dump(tx) for tx in transactions]

    return router


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BudgetError)
    async def budget_error_handler(request: Request, exc: BudgetError) -> JSONResponse:
        status = 500
        for error_type, mapped in _STATUS_BY_ERROR.items():
            if isinstance(exc, error_type):
                status = mapped
                break
        if status >= 500:
            log.error("request_failed", extra={"path": request.url.path, "code": exc.code})
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"] if part != "body")
            problems.append(f"{location}: {error['msg']}" if location else error["msg"])
        error = ValidationError("; ".join(problems) or "invalid request")
        return JSONResponse(status_code=400, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )


def create_app(store: Optional[Store] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    When `store` is given the caller owns it. Otherwise the configured store is
    opened on startup and closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if store is not None:
            yield
            return
        owned = build_store(settings)
        _bind_store(app, owned, settings)
        log.info("store_opened", extra={"backend": owned.name})
        try:
            yield
        finally:
            owned.close()
            log.info("store_closed", extra={"backend": owned.name})

    app = FastAPI(title="Envelope Budget API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if store is not None:
        _bind_store(app, store, settings)
    app.include_router(build_router(settings))
    _register_error_handlers(app)
    return app


__all__ = ["create_app", "build_router"]
