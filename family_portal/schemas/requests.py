"""Schemas for reviewable requests: submission payloads and responses.

Submission payloads double as the validation layer of the approval engine:
each request kind owns one payload model whose ``to_record`` produces the
column values for its table.
"""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import ConfigDict, EmailStr, Field, field_validator

from ..models import RequestKind, RequestStatus
from .base import PortalBaseModel


def split_name(full_name: str | None) -> tuple[str | None, str | None]:
    """Split "First Middle Last" into ("First", "Middle Last")."""
    if not full_name or not full_name.strip():
        return None, None
    parts = full_name.split()
    return parts[0], " ".join(parts[1:])


# =============================================================================
# SUBMISSION PAYLOADS
# =============================================================================


class RequestPayload(PortalBaseModel):
    """Base class for kind-specific submission payloads."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()


class FamilyMemberRequestCreate(RequestPayload):
    """Ask admins to add someone to the family tree."""

    name: str = Field(..., min_length=1, max_length=240)
    gender: str = Field(..., min_length=1, max_length=20)
    birth_date: date | None = Field(default=None, alias="birthDate")
    description: str | None = None
    image_src: str | None = Field(default=None, alias="imageSrc")
    father_name: str | None = Field(default=None, alias="fatherName")
    mother_name: str | None = Field(default=None, alias="motherName")
    spouse_name: str | None = Field(default=None, alias="spouseName")
    order_of_birth: int | None = Field(default=None, alias="orderOfBirth", ge=1)
    order_of_marriage: int | None = Field(default=None, alias="orderOfMarriage", ge=1)

    @field_validator("gender")
    @classmethod
    def normalize_gender(cls, v: str) -> str:
        return v.lower()

    def to_record(self) -> dict[str, Any]:
        first_name, last_name = split_name(self.name)
        fathers_first, fathers_last = split_name(self.father_name)
        mothers_first, mothers_last = split_name(self.mother_name)
        spouses_first, spouses_last = split_name(self.spouse_name)
        return {
            "first_name": first_name,
            "last_name": last_name or "",
            "gender": self.gender,
            "date_of_birth": self.birth_date,
            "picture_link": self.image_src,
            "marital_status": self.description,
            "fathers_first_name": fathers_first,
            "fathers_last_name": fathers_last,
            "mothers_first_name": mothers_first,
            "mothers_last_name": mothers_last,
            "spouses_first_name": spouses_first,
            "spouses_last_name": spouses_last,
            "order_of_birth": self.order_of_birth,
            "order_of_marriage": self.order_of_marriage,
        }


class MemberRequestCreate(RequestPayload):
    """Account request to join the community."""

    first_name: str = Field(..., min_length=1, max_length=120)
    last_name: str = Field(default="", max_length=120)
    email: EmailStr
    phone_number: str | None = Field(default=None, max_length=40)
    note: str | None = None


class GalleryItemCreate(RequestPayload):
    """Gallery upload; ``url`` must point at an already stored file."""

    url: str = Field(..., min_length=1, max_length=1000)
    caption: str | None = None
    file_name: str | None = Field(default=None, max_length=255)
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = Field(default=None, max_length=100)
    album_id: str | None = Field(default=None, max_length=64)

    @field_validator("url")
    @classmethod
    def require_resolvable_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) link to the uploaded file")
        return v


class NoticeBoardPostCreate(RequestPayload):
    """Notice for the community notice board."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)
    pinned: bool = False
    image: str | None = Field(default=None, max_length=1000)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for tag in v:
            tag = tag.strip().lower()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class EventRequestCreate(RequestPayload):
    """Proposed family event."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    event_date: datetime | None = None
    location: str | None = Field(default=None, max_length=255)
    image: str | None = Field(default=None, max_length=1000)


# =============================================================================
# TRANSITIONS
# =============================================================================


class TransitionBody(PortalBaseModel):
    """Optional reviewer note attached to an approve/reject."""

    note: str | None = Field(default=None, max_length=2000)


class BulkTransitionBody(PortalBaseModel):
    """Approve or reject many requests of one kind at once."""

    ids: list[UUID] = Field(..., min_length=1, max_length=200)
    action: Literal["approve", "reject"]
    note: str | None = Field(default=None, max_length=2000)


class BulkTransitionResponse(PortalBaseModel):
    succeeded: list[UUID]
    failed: dict[str, str]


# =============================================================================
# RESPONSES
# =============================================================================


class RequestResponse(PortalBaseModel):
    """A request of any kind with its kind-specific fields under ``payload``."""

    id: UUID
    kind: RequestKind
    status: RequestStatus
    display_name: str
    requested_by: str | None = None
    reviewed_by: str | None = None
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    payload: dict[str, Any]


class RequestListResponse(PortalBaseModel):
    kind: RequestKind
    items: list[RequestResponse]
    total: int
