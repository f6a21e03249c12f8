from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(ApiModel):
    id: int
    username: str
    email: str
    created_at: datetime
    updated_at: datetime


class CreateUserRequest(ApiModel):
    username: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=255)

    @field_validator("username", "email")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class HelloResponse(ApiModel):
    message: str
    database_healthy: bool = False
    timestamp: int = Field(default_factory=_now_ms)


class HealthResponse(ApiModel):
    status: str
    database: str
    database_info: str | None = None
    timestamp: int = Field(default_factory=_now_ms)

    @classmethod
    def from_check(cls, healthy: bool, database_info: str | None = None) -> "HealthResponse":
        return cls(
            status="UP" if healthy else "DOWN",
            database="CONNECTED" if healthy else "DISCONNECTED",
            database_info=database_info,
        )


class CountResponse(ApiModel):
    count: int
    timestamp: int = Field(default_factory=_now_ms)
