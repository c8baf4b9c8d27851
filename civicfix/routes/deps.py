"""
Shared route dependencies: identity, session and error translation.
"""

from typing import AsyncIterator, Optional
import logging

from fastapi import Depends, Header, HTTPException, Query, Request, status

from civicfix.core.errors import (
    FetchError,
    IllegalTransitionError,
    PermissionDeniedError,
    ReportError,
    ReportNotFoundError,
    ValidationError,
    WriteInFlightError,
    WriteTimeoutError,
)
from civicfix.models.report import ReportCategory, ReportPriority, ReportStatus
from civicfix.models.user import User
from civicfix.services.projections import ReportFilter
from civicfix.services.reconciler import SubscriptionReconciler
from civicfix.services.report_store import ReportStore
from civicfix.services.session import Session
from civicfix.services.user_service import UserService

logger = logging.getLogger(__name__)

_STATUS_CODES = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (IllegalTransitionError, status.HTTP_409_CONFLICT),
    (WriteInFlightError, status.HTTP_409_CONFLICT),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ReportNotFoundError, status.HTTP_404_NOT_FOUND),
    (WriteTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
]


def to_http_exception(exc: ReportError) -> HTTPException:
    """Translate a lifecycle error into the HTTP response the UI expects."""
    code = status.HTTP_503_SERVICE_UNAVAILABLE
    for error_type, mapped in _STATUS_CODES:
        if isinstance(exc, error_type):
            code = mapped
            break

    detail = {"error": type(exc).__name__, "message": exc.message, "retryable": exc.retryable}
    if isinstance(exc, ValidationError):
        detail["fields"] = exc.fields
    if isinstance(exc, IllegalTransitionError):
        detail["allowed"] = exc.allowed
    return HTTPException(status_code=code, detail=detail)


def get_store(request: Request) -> ReportStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report sync has not been started"
        )
    return store


def get_reconciler(request: Request) -> Optional[SubscriptionReconciler]:
    return getattr(request.app.state, "reconciler", None)


async def resolve_user(request, user_id: Optional[str]) -> User:
    service = UserService(backend=request.app.state.backend)
    try:
        user = await service.current_user(user_id)
    except FetchError as e:
        raise to_http_exception(e)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or missing user")
    return user


async def get_current_user(request: Request, x_user_id: Optional[str] = Header(None)) -> User:
    """The auth gateway forwards the verified user id in X-User-Id."""
    return await resolve_user(request, x_user_id)


async def get_session(
    user: User = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
    reconciler: Optional[SubscriptionReconciler] = Depends(get_reconciler),
) -> AsyncIterator[Session]:
    session = Session(user, store, reconciler)
    try:
        yield session
    finally:
        await session.close()


def get_staff_session(session: Session = Depends(get_session)) -> Session:
    if not session.user.is_staff:
        raise to_http_exception(PermissionDeniedError("Staff access required"))
    return session


def get_report_filters(
    status: Optional[ReportStatus] = Query(None, description="Filter by status"),
    priority: Optional[ReportPriority] = Query(None, description="Filter by priority"),
    category: Optional[ReportCategory] = Query(None, description="Filter by category"),
) -> ReportFilter:
    return ReportFilter(status=status, priority=priority, category=category)
