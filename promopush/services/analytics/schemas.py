"""Response schemas for delivery analytics."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NamedCount(_CamelModel):
    name: str
    count: int


class DailyCounts(_CamelModel):
    date: dt.date
    sent: int = 0
    delivered: int = 0
    clicked: int = 0


class RecentNotification(_CamelModel):
    title: str
    sent_at: dt.datetime
    delivered: bool
    clicked: bool
    type: str


class AnalyticsSnapshot(_CamelModel):
    """Rollup of delivery/click logs since a point in time."""

    since: dt.datetime | None = None
    total_sent: int = 0
    total_delivered: int = 0
    total_clicked: int = 0
    total_failed: int = 0
    delivery_rate: float = 0.0
    click_rate: float = 0.0
    by_type: list[NamedCount] = Field(default_factory=list)
    by_status: list[NamedCount] = Field(default_factory=list)
    by_day: list[DailyCounts] = Field(default_factory=list)
    recent: list[RecentNotification] = Field(default_factory=list)
    skipped_rows: int = 0
