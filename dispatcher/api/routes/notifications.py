"""Queue administration: statistics, history, export, requeue and delete."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import PlainTextResponse

from dispatcher.api.export import history_to_csv
from dispatcher.api.schemas import HistoryResponse, NotificationRead
from dispatcher.domain.models import EntryState, QueueStats
from dispatcher.logging import get_logger
from dispatcher.persistence.database import get_session
from dispatcher.persistence.exceptions import RecordNotFoundError
from dispatcher.persistence.repositories import NotificationQueueRepository

logger = get_logger(__name__, component="api")

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.options("")
@router.options("/{path:path}")
def notifications_preflight(path: str = "") -> PlainTextResponse:
    return PlainTextResponse("ok")


@router.get("/stats", response_model=QueueStats)
def get_stats(network_id: Optional[str] = None) -> QueueStats:
    """Sent, pending and failed totals, counts by type and recent activity."""

    with get_session() as session:
        return NotificationQueueRepository(session).get_stats(network_id=network_id)


@router.get("", response_model=HistoryResponse)
def list_history(
    network_id: Optional[str] = None,
    status_filter: Optional[EntryState] = Query(None, alias="status"),
    notification_type: Optional[str] = None,
    recipient_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> HistoryResponse:
    """Paginated history, newest first. Pages start at 0."""

    with get_session() as session:
        history = NotificationQueueRepository(session).list_history(
            network_id=network_id,
            status=status_filter,
            notification_type=notification_type,
            recipient_id=recipient_id,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )

    return HistoryResponse(
        notifications=[NotificationRead.from_entry(entry) for entry in history.entries],
        total_count=history.total_count,
        page=history.page,
        limit=history.limit,
        total_pages=history.total_pages,
    )


@router.get("/export")
def export_history(
    network_id: Optional[str] = None,
    status_filter: Optional[EntryState] = Query(None, alias="status"),
    notification_type: Optional[str] = None,
    recipient_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Response:
    """Every matching entry as CSV."""

    with get_session() as session:
        entries = NotificationQueueRepository(session).export_history(
            network_id=network_id,
            status=status_filter,
            notification_type=notification_type,
            recipient_id=recipient_id,
            start_date=start_date,
            end_date=end_date,
        )

    return Response(
        content=history_to_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="notification-history.csv"'},
    )


@router.get("/{entry_id}", response_model=NotificationRead)
def get_notification(entry_id: str) -> NotificationRead:
    with get_session() as session:
        entry = NotificationQueueRepository(session).get(entry_id)
    if entry is None:
        raise RecordNotFoundError(f"Notification {entry_id} not found")
    return NotificationRead.from_entry(entry)


@router.post("/{entry_id}/requeue", response_model=NotificationRead)
def requeue_notification(entry_id: str) -> NotificationRead:
    """Clear the failure so the next dispatch run picks the entry up again."""

    with get_session() as session:
        entry = NotificationQueueRepository(session).requeue(entry_id)

    logger.info(
        f"Notification {entry_id} requeued",
        extra={"event": "api.notification.requeued", "entry_id": entry_id},
    )
    return NotificationRead.from_entry(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(entry_id: str) -> Response:
    with get_session() as session:
        NotificationQueueRepository(session).delete(entry_id)

    logger.info(
        f"Notification {entry_id} deleted",
        extra={"event": "api.notification.deleted", "entry_id": entry_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
