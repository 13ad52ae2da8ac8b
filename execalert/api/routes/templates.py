"""Notification template API routes."""

from fastapi import APIRouter, Query

from execalert.api.deps import TemplateServiceDep
from execalert.models.template import NotificationChannel, NotificationTemplate, TemplateContent
from execalert.schemas.common import APIResponse
from execalert.schemas.template import SeedResult, TemplateCreate, TemplateUpdate

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("", response_model=APIResponse[NotificationTemplate])
async def create_template(
    data: TemplateCreate,
    service: TemplateServiceDep,
) -> APIResponse[NotificationTemplate]:
    """Create a template. Invalid syntax or channel/format pairs are rejected with 400."""
    created = await service.create_template(TemplateContent(**data.model_dump()))
    return APIResponse(data=created)


@router.get("", response_model=APIResponse[list[NotificationTemplate]])
async def list_templates(
    service: TemplateServiceDep,
    event_type: str | None = Query(default=None, description="Filter by event type"),
    channel: NotificationChannel | None = Query(default=None, description="Filter by channel"),
) -> APIResponse[list[NotificationTemplate]]:
    templates = await service.list_templates(event_type=event_type, channel=channel)
    return APIResponse(data=templates)


@router.post("/seed", response_model=APIResponse[SeedResult])
async def seed_templates(service: TemplateServiceDep) -> APIResponse[SeedResult]:
    """Create the default templates that are not present yet."""
    created = await service.seed_default_templates()
    return APIResponse(
        data=SeedResult(created=len(created), template_ids=[t.template_id for t in created])
    )


@router.get("/{template_id}", response_model=APIResponse[NotificationTemplate])
async def get_template(
    template_id: str,
    service: TemplateServiceDep,
) -> APIResponse[NotificationTemplate]:
    return APIResponse(data=await service.get_template_by_id(template_id))


@router.patch("/{template_id}", response_model=APIResponse[NotificationTemplate])
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    service: TemplateServiceDep,
) -> APIResponse[NotificationTemplate]:
    """Partially update a template."""
    updated = await service.update_template(template_id, data.model_dump(exclude_unset=True))
    return APIResponse(data=updated)
