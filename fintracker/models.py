"""SQLAlchemy models for the finance tracking backend."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from .database import Base

# Bounds of the Integer and Numeric(12, 2) columns below.
MAX_ID = 2_147_483_647
AMOUNT_SCALE = 2
AMOUNT_MAX_INTEGER_DIGITS = 10


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)
    username: str = Column(String(150), unique=True, nullable=False, index=True)
    password_digest: str = Column(Text, nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id: int = Column(Integer, primary_key=True, index=True)
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name: str = Column(String(100), nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id: int = Column(Integer, primary_key=True, index=True)
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount: Decimal = Column(Numeric(12, 2), nullable=False)
    type: str = Column(String(16), nullable=False)
    category_id: Optional[int] = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    date: datetime = Column(DateTime, nullable=False)
