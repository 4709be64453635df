"""
FILE: src/shared/schemas.py
Pydantic schemas shared across routers
"""
from pydantic import BaseModel
from typing import Any, Generic, List, Optional, TypeVar
import math

T = TypeVar("T")


class ResponseModel(BaseModel):
    """Standard response wrapper"""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None


class MessageResponse(BaseModel):
    """Confirmation payload for writes"""
    message: str


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def build(cls, items: List[T], total: int, page: int, page_size: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size) if page_size else 0,
        )
