"""Pydantic schemas for HTTP bodies and websocket frames."""
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class UserRecord(WireModel):
    id: str
    email: str
    username: str = ""
    status: str = ""

    @field_validator("username", "status", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class MessageRecord(WireModel):
    id: str
    from_user_id: str = Field(alias="fromUserId")
    to_user_id: str = Field(alias="toUserId")
    content: Optional[str] = None
    type: Literal["text", "media"] = "text"
    created_at: datetime = Field(alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class DataEnvelope(WireModel):
    data: Any = None


class LoginRequest(WireModel):
    email: str
    password: str


class LoginResponse(WireModel):
    token: str
    user: UserRecord


class OutboundMessage(WireModel):
    from_user_id: str = Field(alias="fromUserId")
    to_user_id: str = Field(alias="toUserId")
    text: str


class EventFrame(WireModel):
    event: str
    data: Any = None
