"""Service instances for route handlers."""
from functools import lru_cache

from app.core.auth import get_policy, get_session_registry, get_token_codec
from app.core.config import settings
from app.infrastructure.store import get_store
from app.services.accounts import AccountService
from app.services.community import CommunityService
from app.services.notifications import NullPublisher, Publisher
from app.services.tasks import TaskService


@lru_cache(maxsize=1)
def get_publisher() -> Publisher:
    return NullPublisher()


@lru_cache(maxsize=1)
def get_account_service() -> AccountService:
    return AccountService(
        store=get_store(),
        codec=get_token_codec(),
        policy=get_policy(),
        super_admin_email=settings.super_admin_email,
        registry=get_session_registry(),
    )


@lru_cache(maxsize=1)
def get_task_service() -> TaskService:
    return TaskService(get_store(), get_policy(), get_publisher())


@lru_cache(maxsize=1)
def get_community_service() -> CommunityService:
    return CommunityService(get_store(), get_policy(), get_publisher())
