"""
Module: replenishment_kernel.selectors.request_selector
Responsibility: Read-only access to replenishment requests: single fetch with
    items and status log, and filtered listings.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Listings are ordered by created_at DESC, then id DESC (most recent
      first, stable under equal timestamps).
    - A RequestListing is lazy and restartable: every iteration re-runs the
      query against the current committed state, one page at a time.
    - Requests of other clients are never returned.

Failure modes:
    - RequestNotFoundError from get_request() for unknown or foreign ids.
    - InvalidRequestError for an unknown status filter value.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, nullcontext
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from replenishment_kernel.domain.dtos import RequestInfo
from replenishment_kernel.domain.status import TERMINAL_STATUSES, RequestStatus
from replenishment_kernel.exceptions import InvalidRequestError, RequestNotFoundError
from replenishment_kernel.models.request import ReplenishmentRequest
from replenishment_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 100

SessionSource = Callable[[], AbstractContextManager[Session]]


class RequestListing:
    """
    Re-iterable, lazily paged sequence of RequestInfo (status log omitted).

    Each page is read with keyset pagination on (created_at, id) inside its
    own session context, so nothing is held open between pages.
    """

    def __init__(
        self,
        client_id: str,
        session_source: SessionSource,
        shop_id: str | None = None,
        dc_id: str | None = None,
        status: RequestStatus | None = None,
        active_only: bool = False,
        limit: int | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client_id = client_id
        self.shop_id = shop_id
        self.dc_id = dc_id
        self.status = status
        self.active_only = active_only
        self.limit = limit
        self._session_source = session_source
        self._page_size = page_size

    def _page_stmt(self, after: tuple[datetime, UUID] | None, size: int):
        R = ReplenishmentRequest
        stmt = select(R).where(R.client_id == self.client_id)
        if self.shop_id is not None:
            stmt = stmt.where(R.shop_id == self.shop_id)
        if self.dc_id is not None:
            stmt = stmt.where(R.dc_id == self.dc_id)
        if self.status is not None:
            stmt = stmt.where(R.status == self.status.value)
        if self.active_only:
            stmt = stmt.where(R.status.not_in([s.value for s in TERMINAL_STATUSES]))
        if after is not None:
            created_at, request_id = after
            stmt = stmt.where(
                or_(
                    R.created_at < created_at,
                    and_(R.created_at == created_at, R.id < request_id),
                )
            )
        return stmt.order_by(R.created_at.desc(), R.id.desc()).limit(size)

    def __iter__(self) -> Iterator[RequestInfo]:
        remaining = self.limit
        after = None
        while remaining is None or remaining > 0:
            size = self._page_size if remaining is None else min(self._page_size, remaining)
            with self._session_source() as session:
                rows = session.execute(self._page_stmt(after, size)).scalars().all()
                page = [row.to_dto(include_log=False) for row in rows]
            if not page:
                return
            yield from page
            if remaining is not None:
                remaining -= len(page)
            if len(page) < size:
                return
            after = (page[-1].created_at, page[-1].id)

    def __repr__(self) -> str:
        return (
            f"<RequestListing client={self.client_id} shop={self.shop_id} "
            f"dc={self.dc_id} status={self.status} active_only={self.active_only} "
            f"limit={self.limit}>"
        )


class RequestSelector(BaseSelector[ReplenishmentRequest]):
    """Read-only queries over requests within one client scope."""

    def get_request(self, client_id: str, request_id: UUID | str) -> RequestInfo:
        """
        Fetch one request with its items and ordered status log.

        Raises:
            RequestNotFoundError: unknown id, malformed id, or foreign client.
        """
        try:
            rid = request_id if isinstance(request_id, UUID) else UUID(str(request_id))
        except ValueError:
            raise RequestNotFoundError(str(request_id)) from None

        request = self.session.execute(
            select(ReplenishmentRequest)
            .where(
                ReplenishmentRequest.id == rid,
                ReplenishmentRequest.client_id == client_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request.to_dto()

    def list_requests(
        self,
        client_id: str,
        shop_id: str | None = None,
        dc_id: str | None = None,
        status: RequestStatus | str | None = None,
        active_only: bool = False,
        limit: int | None = None,
    ) -> RequestListing:
        """
        Listing of requests, most recent first.

        ``limit=None`` means unlimited.  The listing reads through this
        selector's session, so it must be consumed while that session is open.
        """
        return RequestListing(
            client_id,
            lambda: nullcontext(self.session),
            shop_id=shop_id,
            dc_id=dc_id,
            status=parse_status_filter(status),
            active_only=active_only,
            limit=check_limit(limit),
        )


def parse_status_filter(status: RequestStatus | str | None) -> RequestStatus | None:
    if status is None:
        return None
    try:
        return RequestStatus.parse(status)
    except ValueError as exc:
        raise InvalidRequestError(str(exc), field="status") from None


def check_limit(limit: int | None) -> int | None:
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise InvalidRequestError(f"must be a non-negative integer, got {limit!r}", field="limit")
    return limit
