"""API dependency injection."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from execalert.core.config import get_settings
from execalert.notification.service import NotificationService
from execalert.storage.history_store import NotificationHistoryStore
from execalert.storage.preferences_store import PreferencesStore
from execalert.storage.redis_client import get_redis
from execalert.storage.template_store import TemplateStore
from execalert.templates.service import TemplateService


def get_template_service() -> TemplateService:
    """Get template service instance."""
    return TemplateService(TemplateStore(get_redis()))


def get_history_store() -> NotificationHistoryStore:
    """Get history store instance."""
    return NotificationHistoryStore(get_redis(), ttl_days=get_settings().history_ttl_days)


def get_preferences_store() -> PreferencesStore:
    """Get preferences store instance."""
    return PreferencesStore(get_redis())


@lru_cache
def get_notification_service() -> NotificationService:
    """Get the shared notification service; its channels hold HTTP clients."""
    return NotificationService(get_settings())


async def close_notification_service() -> None:
    if get_notification_service.cache_info().currsize:
        await get_notification_service().close()
        get_notification_service.cache_clear()


# Type aliases for dependency injection
TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]
HistoryStoreDep = Annotated[NotificationHistoryStore, Depends(get_history_store)]
PreferencesStoreDep = Annotated[PreferencesStore, Depends(get_preferences_store)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
