"""Data types passed between the stream listener, the relay and the destination."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from atproto import models
from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Variants of a Mastodon streaming event."""

    UPDATE = "update"
    STATUS_UPDATE = "status.update"
    DELETE = "delete"
    NOTIFICATION = "notification"
    CONVERSATION = "conversation"
    HEARTBEAT = "heartbeat"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StreamEvent:
    """One event received from the source stream."""

    kind: EventKind
    payload: Any = None
    name: Optional[str] = None  # raw event name, set for UNKNOWN

    @property
    def content(self) -> Any:
        if isinstance(self.payload, Mapping):
            return self.payload.get("content")
        return None

    @property
    def account_id(self) -> Optional[str]:
        """Id of the account that wrote the status, for status payloads."""
        if isinstance(self.payload, Mapping):
            account = self.payload.get("account")
            if isinstance(account, Mapping) and account.get("id") is not None:
                return str(account["id"])
        return None

    @property
    def status_id(self) -> Optional[str]:
        if isinstance(self.payload, Mapping):
            status_id = self.payload.get("id")
            return None if status_id is None else str(status_id)
        if self.kind is EventKind.DELETE and self.payload is not None:
            return str(self.payload)
        return None


class DestinationSession(BaseModel):
    """Credentials returned by com.atproto.server.createSession."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="accessJwt", min_length=1, repr=False)
    account_id: str = Field(alias="did", min_length=1)

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"


class OutboundPost(BaseModel):
    """An app.bsky.feed.post record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    record_type: str = Field(default=models.ids.AppBskyFeedPost, alias="$type")
    text: str
    created_at: str = Field(alias="createdAt")

    def to_record(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class RelayOutcome(str, Enum):
    """How a single relay attempt ended."""

    POSTED = "posted"
    IGNORED = "ignored"  # not an update by the watched account
    EMPTY = "empty"  # nothing left after sanitizing
    FAILED = "failed"
