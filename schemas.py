"""
API Schemas

Request and response bodies for the HTTP API. Transactions are serialized
with a camel-cased ``userId`` on the wire.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

TransactionType = Literal["income", "expense"]


class Credentials(BaseModel):
    email: EmailStr = Field(..., description="Email address, unique per user")
    password: str = Field(..., min_length=1, description="Plain-text password")


class Token(BaseModel):
    token: str
    token_type: str = "bearer"


class Message(BaseModel):
    message: str


class TransactionIn(BaseModel):
    amount: float = Field(..., description="Signed amount, no currency")
    category: str = Field(..., min_length=1, description="Category such as salary, food, rent")
    type: TransactionType = Field(..., description="Income or expense")


class TransactionPatch(BaseModel):
    """
    Partial update. Omitted and falsy fields both leave the stored value as is.
    """
    amount: Optional[float] = None
    category: Optional[str] = None
    type: Optional[str] = None


class TransactionOut(BaseModel):
    id: int
    user_id: int = Field(..., serialization_alias="userId")
    amount: float
    category: str
    type: TransactionType
    date: datetime

    class Config:
        from_attributes = True
