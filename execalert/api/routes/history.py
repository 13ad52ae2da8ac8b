"""Notification history API routes."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query

from execalert.api.deps import HistoryStoreDep
from execalert.models.notification import DeliveryStatus, NotificationHistoryRecord
from execalert.models.template import NotificationChannel
from execalert.schemas.common import APIResponse, CursorPage
from execalert.storage.history_store import HistoryQuery

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=CursorPage[NotificationHistoryRecord])
async def query_history(
    store: HistoryStoreDep,
    user_id: str | None = Query(default=None, description="Filter by user"),
    event_type: str | None = Query(default=None, description="Filter by event type"),
    channel: NotificationChannel | None = Query(default=None, description="Filter by channel"),
    delivery_status: DeliveryStatus | None = Query(default=None, description="Filter by status"),
    start_date: datetime | None = Query(default=None, description="Sent at or after"),
    end_date: datetime | None = Query(default=None, description="Sent at or before"),
    limit: int = Query(default=50, ge=1, le=100, description="Page size"),
    next_token: str | None = Query(default=None, description="Token from the previous page"),
) -> CursorPage[NotificationHistoryRecord]:
    """Query notification history, newest first."""
    try:
        page = await store.query(
            HistoryQuery(
                user_id=user_id,
                event_type=event_type,
                channel=channel,
                delivery_status=delivery_status,
                start_date=start_date,
                end_date=end_date,
                limit=limit,
                next_token=next_token,
            )
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return CursorPage(data=page.records, next_token=page.next_token)


@router.get("/{notification_id}", response_model=APIResponse[NotificationHistoryRecord])
async def get_history_record(
    notification_id: str,
    store: HistoryStoreDep,
) -> APIResponse[NotificationHistoryRecord]:
    record = await store.get(notification_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return APIResponse(data=record)
