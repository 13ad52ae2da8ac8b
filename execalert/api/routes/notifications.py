"""Direct notification API routes.

These bypass templates and preferences and go straight to the dispatcher.
"""

from fastapi import APIRouter, HTTPException

from execalert.api.deps import NotificationServiceDep
from execalert.core.logging import get_logger
from execalert.models.notification import DeliveryResult, NotificationPayload
from execalert.schemas.common import APIResponse
from execalert.schemas.notification import ExecutionCompleteNotice, ExecutionFailureNotice
from execalert.security.sanitizer import sanitize_contact_details

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _checked(result: DeliveryResult) -> APIResponse[DeliveryResult]:
    if not result.success:
        logger.error("Direct notification failed", error=result.error)
        raise HTTPException(status_code=502, detail=f"Notification failed: {result.error}")
    return APIResponse(data=result)


@router.post("", response_model=APIResponse[DeliveryResult])
async def send_notification(
    data: NotificationPayload,
    service: NotificationServiceDep,
) -> APIResponse[DeliveryResult]:
    """Send a notification by email, SMS or in-app, whichever contact is given first."""
    contact = sanitize_contact_details(data.model_dump())
    payload = data.model_copy(update={"email": contact.email, "phone_number": contact.phone_number})
    return _checked(await service.send_notification(payload))


@router.post("/execution-complete", response_model=APIResponse[DeliveryResult])
async def notify_execution_complete(
    data: ExecutionCompleteNotice,
    service: NotificationServiceDep,
) -> APIResponse[DeliveryResult]:
    email = sanitize_contact_details({"email": data.email}).email
    result = await service.notify_execution_complete(
        data.user_id,
        data.execution_id,
        data.test_name,
        data.result,
        email=email,
    )
    return _checked(result)


@router.post("/execution-failure", response_model=APIResponse[DeliveryResult])
async def notify_execution_failure(
    data: ExecutionFailureNotice,
    service: NotificationServiceDep,
) -> APIResponse[DeliveryResult]:
    email = sanitize_contact_details({"email": data.email}).email
    result = await service.notify_execution_failure(
        data.user_id,
        data.execution_id,
        data.test_name,
        data.error_message,
        email=email,
    )
    return _checked(result)
