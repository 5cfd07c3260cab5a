"""Pydantic schemas for serialising finance tracking data."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Credentials(BaseModel):
    username: str = ""
    password: str = ""


class RegisterResponse(BaseModel):
    id: int
    username: str


class LoginResponse(BaseModel):
    token: str


class CategoryWrite(BaseModel):
    name: str = ""


class CategoryRead(ORMModel):
    id: int
    user_id: int
    name: str


class TransactionWrite(BaseModel):
    """Body accepted by create and full-replace update.

    Range checks live in the store so that the error text stays identical
    whichever entry point is used.
    """

    amount: Decimal = Decimal("0")
    type: str = ""
    category_id: int = 0
    date: Optional[datetime] = None


class TransactionRead(ORMModel):
    id: int
    user_id: int
    amount: Decimal
    type: str
    category_id: Optional[int] = None
    date: datetime


class TransactionListRead(BaseModel):
    transactions: List[TransactionRead]
    total: int
