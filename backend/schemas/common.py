# backend/schemas/common.py
from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Success envelope: { success, message?, data }
class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class PageMeta(BaseModel):
    total: int
    skip: int
    limit: int
    page: int
    total_pages: int


# Success envelope for list endpoints
class PageEnvelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: List[T]
    meta: PageMeta


class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorInfo
