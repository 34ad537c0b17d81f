"""API request/response schemas for the dispatch trigger and device registration."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DispatchRequest(_CamelModel):
    """Body sent by application event producers (approvals, admin actions, ...)."""

    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    body: str
    data: dict[str, Any] | None = None
    notification_type: str = "general"


class DispatchResponse(_CamelModel):
    sent: int
    failed: int = 0
    retry_scheduled: int = 0
    error: str | None = None


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class SubscriptionRequest(_CamelModel):
    """Browser `PushSubscription.toJSON()` plus the owning user."""

    user_id: str = Field(min_length=1)
    endpoint: str
    keys: SubscriptionKeys
    user_agent: str | None = None


class UnsubscribeRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)


class SubscriptionResponse(_CamelModel):
    id: str
    user_id: str
    endpoint: str
