"""FastAPI application exposing the finance tracking endpoints."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__, crud, database, query, schemas
from .config import Settings, load_settings
from .errors import FinTrackerError, NotFoundError, translate_store_error
from .logging import configure_logging
from .security import AuthorizedContext, require_user

LOG = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["system"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/register",
    response_model=schemas.RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["auth"],
)
def register(credentials: schemas.Credentials, db: Session = Depends(database.get_db)) -> schemas.RegisterResponse:
    user = crud.register_user(db, credentials.username, credentials.password)
    return schemas.RegisterResponse(id=user.id, username=user.username)


@router.post("/login", response_model=schemas.LoginResponse, tags=["auth"])
def login(
    credentials: schemas.Credentials,
    request: Request,
    db: Session = Depends(database.get_db),
) -> schemas.LoginResponse:
    token = crud.login(db, credentials.username, credentials.password, request.app.state.settings)
    return schemas.LoginResponse(token=token)


@router.get("/transactions", response_model=schemas.TransactionListRead, tags=["transactions"])
def list_transactions(
    type_: Optional[str] = Query(None, alias="type"),
    category_id: Optional[str] = None,
    min_amount: Optional[str] = None,
    max_amount: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.TransactionListRead:
    filters, order, pagination = query.parse_listing_params(
        type=type_,
        category_id=category_id,
        min_amount=min_amount,
        max_amount=max_amount,
        sort=sort,
        page=page,
        limit=limit,
    )
    result = query.list_transactions(db, ctx, filters, order, pagination)
    return schemas.TransactionListRead(
        transactions=[schemas.TransactionRead.model_validate(row) for row in result.rows],
        total=result.total,
    )


@router.post(
    "/transactions",
    response_model=schemas.TransactionRead,
    status_code=status.HTTP_201_CREATED,
    tags=["transactions"],
)
def create_transaction(
    transaction_in: schemas.TransactionWrite,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.TransactionRead:
    return crud.create_transaction(db, ctx, transaction_in)


@router.get("/transactions/{transaction_id}", response_model=schemas.TransactionRead, tags=["transactions"])
def get_transaction(
    transaction_id: int,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.TransactionRead:
    transaction = crud.get_transaction(db, ctx, transaction_id)
    if transaction is None:
        raise NotFoundError("transaction not found")
    return transaction


@router.put("/transactions/{transaction_id}", response_model=schemas.TransactionRead, tags=["transactions"])
def update_transaction(
    transaction_id: int,
    transaction_in: schemas.TransactionWrite,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.TransactionRead:
    transaction = crud.update_transaction(db, ctx, transaction_id, transaction_in)
    if transaction is None:
        raise NotFoundError("transaction not found")
    return transaction


@router.delete(
    "/transactions/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["transactions"],
)
def delete_transaction(
    transaction_id: int,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> Response:
    if not crud.delete_transaction(db, ctx, transaction_id):
        raise NotFoundError("transaction not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/categories", response_model=List[schemas.CategoryRead], tags=["categories"])
def list_categories(
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> List[schemas.CategoryRead]:
    return crud.list_categories(db, ctx)


@router.post(
    "/categories",
    response_model=schemas.CategoryRead,
    status_code=status.HTTP_201_CREATED,
    tags=["categories"],
)
def create_category(
    category_in: schemas.CategoryWrite,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.CategoryRead:
    return crud.create_category(db, ctx, category_in.name)


@router.get("/categories/{category_id}", response_model=schemas.CategoryRead, tags=["categories"])
def get_category(
    category_id: int,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.CategoryRead:
    category = crud.get_category(db, ctx, category_id)
    if category is None:
        raise NotFoundError("category not found")
    return category


@router.put("/categories/{category_id}", response_model=schemas.CategoryRead, tags=["categories"])
def update_category(
    category_id: int,
    category_in: schemas.CategoryWrite,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> schemas.CategoryRead:
    if not crud.update_category(db, ctx, category_id, category_in.name):
        raise NotFoundError("category not found")
    return schemas.CategoryRead(id=category_id, user_id=ctx.user_id, name=category_in.name)


@router.delete(
    "/categories/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["categories"],
)
def delete_category(
    category_id: int,
    ctx: AuthorizedContext = Depends(require_user),
    db: Session = Depends(database.get_db),
) -> Response:
    if not crud.delete_category(db, ctx, category_id):
        raise NotFoundError("category not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _handle_domain_error(_: Request, exc: FinTrackerError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


async def _handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        messages.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return _error(status.HTTP_400_BAD_REQUEST, "; ".join(messages) or "invalid request")


async def _handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    translated = translate_store_error(exc)
    if translated.status_code >= 500:
        LOG.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(translated.status_code, translated.message)


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """Build the application around explicit settings and an optional engine.

    Without arguments the settings come from :func:`load_settings`, which
    fails fast when the signing secret or the database URL is missing.
    """

    settings = settings or load_settings()
    engine = engine or database.build_engine(settings.database_url)
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        database.init_db(engine)
        LOG.info("Database initialized")
        yield

    app = FastAPI(title="fintracker", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = database.build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FinTrackerError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, _handle_store_error)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        LOG.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "user_id": getattr(request.state, "user_id", None),
            },
        )
        return response

    app.include_router(router)
    return app
