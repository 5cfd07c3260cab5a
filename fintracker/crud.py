"""CRUD helper functions for the finance tracking backend.

Every category and transaction helper takes an
:class:`~fintracker.security.AuthorizedContext` and scopes its statement to
``ctx.user_id``; rows owned by someone else behave exactly like missing rows.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .config import Settings
from .errors import (
    CATEGORY_NOT_OWNED,
    AuthError,
    AuthFailure,
    ConflictError,
    ValidationError,
    translate_store_error,
)
from .security import AuthorizedContext, BCRYPT_MAX_BYTES, hash_password, issue_token, verify_password

LOG = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
AMOUNT_QUANTUM = Decimal(1).scaleb(-models.AMOUNT_SCALE)
AMOUNT_CEILING = Decimal(10) ** models.AMOUNT_MAX_INTEGER_DIGITS


def _flush(session: Session) -> None:
    try:
        session.flush()
    except SQLAlchemyError as exc:
        raise translate_store_error(exc) from exc


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the ``date`` column."""
    return datetime.now(UTC).replace(tzinfo=None)


def _id_in_range(value: int) -> bool:
    return 0 < value <= models.MAX_ID


def _normalise_date(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


# Users -----------------------------------------------------------------------


def get_user_by_username(session: Session, username: str) -> Optional[models.User]:
    stmt = select(models.User).where(models.User.username == username)
    return session.scalar(stmt)


def register_user(session: Session, username: str, password: str) -> models.User:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not username or not password:
        raise ValidationError("username and password are required")
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"password length exceeds {BCRYPT_MAX_BYTES} bytes")
    if get_user_by_username(session, username) is not None:
        raise ConflictError("username already exists")

    user = models.User(username=username, password_digest=hash_password(password))
    session.add(user)
    _flush(session)
    LOG.info("Registered user id=%s", user.id)
    return user


def login(session: Session, username: str, password: str, settings: Settings) -> str:
    """Return a fresh token for valid credentials.

    Unknown usernames and wrong passwords raise the same error.
    """

    user = get_user_by_username(session, username)
    if user is None or not verify_password(password, user.password_digest):
        raise AuthError(AuthFailure.INVALID_CREDENTIALS)
    return issue_token(user.id, settings)


# Categories ------------------------------------------------------------------


def _require_name(name: str) -> str:
    if not name:
        raise ValidationError("category name is required")
    return name


def create_category(session: Session, ctx: AuthorizedContext, name: str) -> models.Category:
    category = models.Category(user_id=ctx.user_id, name=_require_name(name))
    session.add(category)
    _flush(session)
    return category


def get_category(session: Session, ctx: AuthorizedContext, category_id: int) -> Optional[models.Category]:
    if not _id_in_range(category_id):
        return None
    stmt = select(models.Category).where(
        models.Category.id == category_id,
        models.Category.user_id == ctx.user_id,
    )
    return session.scalar(stmt)


def category_exists(session: Session, ctx: AuthorizedContext, category_id: int) -> bool:
    if not _id_in_range(category_id):
        return False
    stmt = select(
        exists().where(
            models.Category.id == category_id,
            models.Category.user_id == ctx.user_id,
        )
    )
    return bool(session.scalar(stmt))


def list_categories(session: Session, ctx: AuthorizedContext) -> List[models.Category]:
    stmt = (
        select(models.Category)
        .where(models.Category.user_id == ctx.user_id)
        .order_by(models.Category.id)
    )
    return list(session.scalars(stmt))


def update_category(session: Session, ctx: AuthorizedContext, category_id: int, name: str) -> bool:
    name = _require_name(name)
    category = get_category(session, ctx, category_id)
    if category is None:
        return False
    category.name = name
    _flush(session)
    return True


def delete_category(session: Session, ctx: AuthorizedContext, category_id: int) -> bool:
    """Delete a category unless one of the caller's transactions references it."""

    if not _id_in_range(category_id):
        return False
    usage_stmt = select(func.count(models.Transaction.id)).where(
        models.Transaction.category_id == category_id,
        models.Transaction.user_id == ctx.user_id,
    )
    if (session.scalar(usage_stmt) or 0) > 0:
        raise ConflictError("category is used in transactions")
    category = get_category(session, ctx, category_id)
    if category is None:
        return False
    session.delete(category)
    _flush(session)
    return True


# Transactions ----------------------------------------------------------------


def parse_transaction_type(value: str) -> models.TransactionType:
    try:
        return models.TransactionType(value)
    except ValueError as exc:
        raise ValidationError("type must be 'income' or 'expense'") from exc


def _validate_write(
    session: Session, ctx: AuthorizedContext, data: schemas.TransactionWrite
) -> models.TransactionType:
    if not data.amount.is_finite() or data.amount <= Decimal(0):
        raise ValidationError("amount must be positive")
    if data.amount >= AMOUNT_CEILING:
        raise ValidationError(f"amount must be less than {AMOUNT_CEILING}")
    if data.amount != data.amount.quantize(AMOUNT_QUANTUM):
        raise ValidationError(f"amount must have at most {models.AMOUNT_SCALE} decimal places")
    tx_type = parse_transaction_type(data.type)
    if data.category_id <= 0:
        raise ValidationError("category_id is required and must be positive")
    if not category_exists(session, ctx, data.category_id):
        raise ValidationError(CATEGORY_NOT_OWNED)
    return tx_type


def create_transaction(
    session: Session, ctx: AuthorizedContext, data: schemas.TransactionWrite
) -> models.Transaction:
    tx_type = _validate_write(session, ctx, data)
    transaction = models.Transaction(
        user_id=ctx.user_id,
        amount=data.amount,
        type=tx_type.value,
        category_id=data.category_id,
        date=_normalise_date(data.date),
    )
    session.add(transaction)
    _flush(session)
    session.refresh(transaction)
    return transaction


def get_transaction(
    session: Session, ctx: AuthorizedContext, transaction_id: int
) -> Optional[models.Transaction]:
    if not _id_in_range(transaction_id):
        return None
    stmt = select(models.Transaction).where(
        models.Transaction.id == transaction_id,
        models.Transaction.user_id == ctx.user_id,
    )
    return session.scalar(stmt)


def update_transaction(
    session: Session,
    ctx: AuthorizedContext,
    transaction_id: int,
    data: schemas.TransactionWrite,
) -> Optional[models.Transaction]:
    """Replace amount, type, category and date; ``None`` when not found."""

    transaction = get_transaction(session, ctx, transaction_id)
    if transaction is None:
        return None
    tx_type = _validate_write(session, ctx, data)
    transaction.amount = data.amount
    transaction.type = tx_type.value
    transaction.category_id = data.category_id
    transaction.date = _normalise_date(data.date)
    _flush(session)
    session.refresh(transaction)
    return transaction


def delete_transaction(session: Session, ctx: AuthorizedContext, transaction_id: int) -> bool:
    transaction = get_transaction(session, ctx, transaction_id)
    if transaction is None:
        return False
    session.delete(transaction)
    _flush(session)
    return True
