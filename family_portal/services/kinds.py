"""Registry of reviewable request kinds.

``RequestKind`` is a closed enum; ``REQUEST_KINDS`` maps each member to the
table that stores it, the payload schema that validates submissions, the
human label used in notification copy and the optional promotion that runs
when the request is approved.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    EventRequest,
    FamilyMemberRequest,
    FamilyTreeMember,
    GalleryItem,
    MemberRequest,
    NoticeBoardPost,
    PendingRequestMixin,
    RequestKind,
)
from ..schemas import (
    EventRequestCreate,
    FamilyMemberRequestCreate,
    GalleryItemCreate,
    MemberRequestCreate,
    NoticeBoardPostCreate,
    RequestPayload,
)

# (session, request, now) -> canonical record
Promotion = Callable[[AsyncSession, PendingRequestMixin, datetime], Awaitable[object]]


async def promote_family_member(
    session: AsyncSession,
    request: FamilyMemberRequest,
    now: datetime,
) -> FamilyTreeMember:
    """Materialize an approved family-member request as a family-tree entry."""
    member = FamilyTreeMember(
        first_name=request.first_name,
        last_name=request.last_name,
        gender=request.gender,
        date_of_birth=request.date_of_birth,
        picture_link=request.picture_link,
        marital_status=request.marital_status,
        fathers_first_name=request.fathers_first_name,
        fathers_last_name=request.fathers_last_name,
        mothers_first_name=request.mothers_first_name,
        mothers_last_name=request.mothers_last_name,
        spouses_first_name=request.spouses_first_name,
        spouses_last_name=request.spouses_last_name,
        order_of_birth=request.order_of_birth,
        order_of_marriage=request.order_of_marriage,
        source_request_id=request.id,
        created_at=now,
    )
    session.add(member)
    await session.flush()
    return member


@dataclass(frozen=True)
class KindDefinition:
    """Static description of one request kind."""
    kind: RequestKind
    model: type[PendingRequestMixin]
    schema: type[RequestPayload]
    label: str
    promotion: Promotion | None = None

    @property
    def table(self) -> str:
        return self.model.__tablename__


REQUEST_KINDS: dict[RequestKind, KindDefinition] = {
    RequestKind.FAMILY_MEMBER: KindDefinition(
        kind=RequestKind.FAMILY_MEMBER,
        model=FamilyMemberRequest,
        schema=FamilyMemberRequestCreate,
        label="Family Member Request",
        promotion=promote_family_member,
    ),
    RequestKind.MEMBER: KindDefinition(
        kind=RequestKind.MEMBER,
        model=MemberRequest,
        schema=MemberRequestCreate,
        label="Member Request",
    ),
    RequestKind.GALLERY: KindDefinition(
        kind=RequestKind.GALLERY,
        model=GalleryItem,
        schema=GalleryItemCreate,
        label="Gallery Request",
    ),
    RequestKind.NOTICE_BOARD: KindDefinition(
        kind=RequestKind.NOTICE_BOARD,
        model=NoticeBoardPost,
        schema=NoticeBoardPostCreate,
        label="Notice Board",
    ),
    RequestKind.EVENT: KindDefinition(
        kind=RequestKind.EVENT,
        model=EventRequest,
        schema=EventRequestCreate,
        label="Event Request",
    ),
}


def get_kind_definition(kind: RequestKind | str) -> KindDefinition:
    return REQUEST_KINDS[RequestKind(kind)]


def kind_for_table(table: str) -> RequestKind | None:
    for definition in REQUEST_KINDS.values():
        if definition.table == table:
            return definition.kind
    return None
