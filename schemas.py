"""
API schemas for the Car Doctor service

Collections live in MongoDB under the names below. Documents are stored as
the client sends them; these models only shape request bodies and the
write-result payloads returned to the client.

- "services" -> read-only catalogue, fields listed in SERVICE_PROJECTION
- "bookings" -> free-form booking documents keyed by owner "email"
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SERVICES = "services"
BOOKINGS = "bookings"

# Fields returned by GET /services/{id}; "_id" is always included
SERVICE_PROJECTION = ("service_id", "title", "img", "price")


class IdentityPayload(BaseModel):
    """Claims submitted to POST /jwt; any extra fields are signed as-is"""
    model_config = ConfigDict(extra="allow")

    # signed verbatim; ownership checks compare this string exactly
    email: str = Field(..., description="Identity the token is issued for")


class BookingStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = Field(None, description="New booking status, e.g. pending or confirmed")


class Success(BaseModel):
    success: bool = True


class Message(BaseModel):
    message: str


class _WriteResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    acknowledged: bool = True


class InsertResult(_WriteResult):
    inserted_id: str


class UpdateResult(_WriteResult):
    matched_count: int
    modified_count: int
    upserted_id: Optional[Any] = None
    upserted_count: int = 0


class DeleteResult(_WriteResult):
    deleted_count: int
