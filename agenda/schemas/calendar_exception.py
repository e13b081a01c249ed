"""
Pydantic schemas for calendar exceptions
"""
from datetime import date
from pydantic import BaseModel, Field
from typing import Optional

from agenda.models import ExceptionCategory


class ExceptionCreateRequest(BaseModel):
    date_start: date
    date_end: date
    time_start: Optional[str] = Field(None, description="HH:MM; omit both times to block whole days")
    time_end: Optional[str] = None
    category: ExceptionCategory = ExceptionCategory.OTHER
    note: Optional[str] = Field(None, max_length=1000)


class ExceptionUpdateRequest(BaseModel):
    """Partial update - only send what changes"""
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    category: Optional[ExceptionCategory] = None
    note: Optional[str] = Field(None, max_length=1000)


class ExceptionResponse(BaseModel):
    id: int
    owner_type: str
    owner_id: int
    date_start: date
    date_end: date
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    category: str
    note: Optional[str] = None


class BlockedDateResponse(BaseModel):
    date: date
    blocked: bool
    exception: Optional[ExceptionResponse] = None
