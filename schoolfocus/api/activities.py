"""
Activity Sync API - Handles activity batches from student device agents
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone

from schoolfocus.api.deps import get_services
from schoolfocus.auth import get_current_user
from schoolfocus.models import Activity
from schoolfocus.schemas import ActivityBatch, ActivityBatchResponse, TokenData
from schoolfocus.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_utc(value: datetime) -> datetime:
    """Agents may send naive timestamps; those are taken as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.post("/activities/batch", response_model=ActivityBatchResponse)
async def sync_activities(
    batch: ActivityBatch,
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Receive and store activity events from a device agent.

    Request body:
    ```json
    {
        "activities": [
            {
                "app_name": "Google Chrome",
                "window_title": "Python tutorial - YouTube",
                "url": "https://youtube.com/watch?v=x",
                "start_time": "2025-01-15T12:00:00Z",
                "end_time": "2025-01-15T12:10:00Z",
                "is_idle": false
            }
        ]
    }
    ```

    Each event gets a best-effort categorization in the response.
    """
    if not batch.activities:
        return ActivityBatchResponse(received=0, categorizations=[])

    rows = []
    for event in batch.activities:
        start_time = _as_utc(event.start_time)
        end_time = _as_utc(event.end_time)
        if end_time < start_time:
            raise HTTPException(
                status_code=400,
                detail=f"end_time is before start_time for {event.app_name}"
            )

        rows.append(Activity(
            user_id=current_user.user_id,
            organization_id=current_user.organization_id,
            device_id=event.device_id,
            app_name=event.app_name,
            window_title=event.window_title,
            url=event.url or None,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=int((end_time - start_time).total_seconds()),
            is_idle=event.is_idle,
        ))

    try:
        received = await services.store.add_activities(rows)
    except SQLAlchemyError as exc:
        logger.exception("Failed to save %d activities for %s", len(rows), current_user.user_id)
        raise HTTPException(
            status_code=500,
            detail="Failed to save activities"
        ) from exc

    categorizations = [
        await services.resolver.categorize(
            app_name=event.app_name,
            url=event.url,
            window_title=event.window_title,
            user_id=current_user.user_id,
            organization_id=current_user.organization_id,
        )
        for event in batch.activities
    ]
    return ActivityBatchResponse(received=received, categorizations=categorizations)
