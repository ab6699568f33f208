"""
Pydantic schemas shared across listing and match endpoints.
"""

import math
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CallerIdentity(BaseModel):
    """Authenticated caller as supplied by the identity service."""
    user_id: int
    user_uuid: UUID
    country_of_residence: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class Pagination(BaseModel):
    """Pagination metadata returned alongside a page of results."""
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""
    success: bool = False
    error: str
    message: str
    errors: list[dict] | None = None
    stack: str | None = None
