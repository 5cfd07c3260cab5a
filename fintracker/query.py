"""Filtered, sorted and paginated reads over a user's transactions.

The listing predicate is always a conjunction anchored on the caller's
``user_id``; optional filters only narrow it further. ``total`` counts every
row matching the predicate and ignores pagination.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from . import models
from .crud import category_exists
from .errors import CATEGORY_NOT_OWNED, ValidationError
from .security import AuthorizedContext

__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "Pagination",
    "TransactionFilters",
    "TransactionPage",
    "list_transactions",
    "parse_listing_params",
]

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
SORT_ORDERS = ("asc", "desc")
# Largest OFFSET the stores accept (signed 64-bit).
MAX_OFFSET = 2**63 - 1


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    """Optional listing filters.

    Attributes:
      type: ``"income"`` or ``"expense"``; ``None`` or empty disables it.
      category_id: Category owned by the caller; ``None`` disables it.
      min_amount: Inclusive lower bound, applied only when greater than zero.
      max_amount: Inclusive upper bound, applied only when greater than zero.
    """

    type: Optional[str] = None
    category_id: Optional[int] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def validate(self) -> None:
        if self.page < 1:
            raise ValidationError("page must be a positive integer")
        if not 1 <= self.limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
        if self.offset > MAX_OFFSET:
            raise ValidationError("page must be a positive integer")


@dataclass(slots=True)
class TransactionPage:
    rows: List[models.Transaction] = field(default_factory=list)
    total: int = 0


def _bound_is_set(value: Optional[Decimal]) -> bool:
    return value is not None and value > 0


def _build_predicate(
    session: Session, ctx: AuthorizedContext, filters: TransactionFilters
) -> List[ColumnElement[bool]]:
    conditions: List[ColumnElement[bool]] = [models.Transaction.user_id == ctx.user_id]

    if filters.type:
        if filters.type not in {member.value for member in models.TransactionType}:
            raise ValidationError("invalid type filter: must be 'income' or 'expense'")
        conditions.append(models.Transaction.type == filters.type)

    if filters.category_id is not None:
        if filters.category_id <= 0 or not category_exists(session, ctx, filters.category_id):
            raise ValidationError(CATEGORY_NOT_OWNED)
        conditions.append(models.Transaction.category_id == filters.category_id)

    if _bound_is_set(filters.min_amount):
        conditions.append(models.Transaction.amount >= filters.min_amount)
    if _bound_is_set(filters.max_amount):
        conditions.append(models.Transaction.amount <= filters.max_amount)
    return conditions


def list_transactions(
    session: Session,
    ctx: AuthorizedContext,
    filters: Optional[TransactionFilters] = None,
    sort: str = "",
    pagination: Optional[Pagination] = None,
) -> TransactionPage:
    """Return one page of the caller's transactions plus the matching total.

    ``sort`` orders by ``date`` (ties broken by ``id``); an empty value keeps
    whatever order the store returns. Every validation error is raised before
    the count query runs.
    """

    filters = filters or TransactionFilters()
    pagination = pagination or Pagination()
    sort = sort or ""
    if sort and sort not in SORT_ORDERS:
        raise ValidationError("invalid sort parameter: must be 'asc' or 'desc'")
    pagination.validate()
    conditions = _build_predicate(session, ctx, filters)

    count_stmt = select(func.count()).select_from(models.Transaction).where(*conditions)
    total = int(session.scalar(count_stmt) or 0)

    stmt = select(models.Transaction).where(*conditions)
    if sort == "asc":
        stmt = stmt.order_by(models.Transaction.date.asc(), models.Transaction.id.asc())
    elif sort == "desc":
        stmt = stmt.order_by(models.Transaction.date.desc(), models.Transaction.id.desc())
    stmt = stmt.limit(pagination.limit).offset(pagination.offset)

    return TransactionPage(rows=list(session.scalars(stmt)), total=total)


def _parse_int(raw: Optional[str], message: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(message) from exc


def _parse_amount(raw: Optional[str], message: str) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise ValidationError(message) from exc
    if not value.is_finite() or value < 0:
        raise ValidationError(message)
    return value


def parse_listing_params(
    type: Optional[str] = None,
    category_id: Optional[str] = None,
    min_amount: Optional[str] = None,
    max_amount: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
) -> tuple[TransactionFilters, str, Pagination]:
    """Turn raw query-string values into typed listing arguments."""

    parsed_category = _parse_int(category_id, "invalid category_id")
    if parsed_category is not None and parsed_category <= 0:
        raise ValidationError("category_id must be positive")
    minimum = _parse_amount(min_amount, "invalid min_amount")
    maximum = _parse_amount(max_amount, "invalid max_amount")
    if type and type not in {member.value for member in models.TransactionType}:
        raise ValidationError("type must be 'income' or 'expense'")
    if sort and sort not in SORT_ORDERS:
        raise ValidationError("sort must be 'asc' or 'desc'")

    parsed_page = _parse_int(page, "page must be a positive integer")
    parsed_limit = _parse_int(limit, f"limit must be between 1 and {MAX_LIMIT}")
    pagination = Pagination(
        page=DEFAULT_PAGE if parsed_page is None else parsed_page,
        limit=DEFAULT_LIMIT if parsed_limit is None else parsed_limit,
    )
    pagination.validate()

    filters = TransactionFilters(
        type=type or None,
        category_id=parsed_category,
        min_amount=minimum,
        max_amount=maximum,
    )
    return filters, sort or "", pagination
