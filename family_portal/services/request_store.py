"""
Request Store: persistence façade for pending-able entities.

All kinds share one API; the kind registry picks the table. The store works
inside a caller-owned session so that the approval engine can put a
promotion and a status flip in the same transaction.
"""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..models import PendingRequestMixin, RequestKind, RequestStatus
from .errors import RequestNotFoundError
from .kinds import get_kind_definition


def row_to_dict(obj: Any) -> dict[str, Any]:
    """Column snapshot of an ORM object, used as change-feed payload."""
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


class RequestStore:
    """Create, query and conditionally transition requests of any kind."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self._session = session
        self._clock = clock

    async def create(
        self,
        kind: RequestKind,
        values: dict[str, Any],
        requested_by: str | None,
    ) -> PendingRequestMixin:
        """Insert a new request. Status is always ``pending`` at creation."""
        definition = get_kind_definition(kind)
        now = self._clock()
        request = definition.model(
            **values,
            status=RequestStatus.PENDING,
            requested_by=requested_by,
            created_at=now,
            updated_at=now,
        )
        self._session.add(request)
        await self._session.flush()
        return request

    async def get(self, kind: RequestKind, request_id: UUID) -> PendingRequestMixin | None:
        model = get_kind_definition(kind).model
        result = await self._session.execute(select(model).where(model.id == request_id))
        return result.scalar_one_or_none()

    async def get_or_raise(self, kind: RequestKind, request_id: UUID) -> PendingRequestMixin:
        request = await self.get(kind, request_id)
        if request is None:
            raise RequestNotFoundError(f"{RequestKind(kind).value} request {request_id} not found")
        return request

    async def list(
        self,
        kind: RequestKind,
        status: RequestStatus | None = None,
        requested_by: str | None = None,
        limit: int | None = None,
    ) -> Sequence[PendingRequestMixin]:
        """List requests newest first, optionally filtered by status and submitter."""
        model = get_kind_definition(kind).model
        query = select(model).order_by(model.created_at.desc())
        if status is not None:
            query = query.where(model.status == status)
        if requested_by is not None:
            query = query.where(model.requested_by == requested_by)
        if limit is not None:
            query = query.limit(limit)
        result = await self._session.execute(query)
        return result.scalars().all()

    async def count(
        self,
        kind: RequestKind,
        status: RequestStatus = RequestStatus.PENDING,
    ) -> int:
        model = get_kind_definition(kind).model
        result = await self._session.execute(
            select(func.count()).select_from(model).where(model.status == status)
        )
        return result.scalar_one()

    async def transition_if_pending(
        self,
        kind: RequestKind,
        request_id: UUID,
        target: RequestStatus,
        reviewed_by: str | None = None,
        note: str | None = None,
    ) -> bool:
        """
        Atomically flip a pending request to ``target``.

        Compiles to ``UPDATE ... WHERE id = :id AND status = 'pending'``; the
        affected-row count tells whether this caller won. Returns False when
        the request was already decided (or lost a concurrent race).
        """
        model = get_kind_definition(kind).model
        result = await self._session.execute(
            update(model)
            .where(model.id == request_id, model.status == RequestStatus.PENDING)
            .values(
                status=target,
                reviewed_by=reviewed_by,
                admin_notes=note,
                updated_at=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
