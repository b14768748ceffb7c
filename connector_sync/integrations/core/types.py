from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from connector_sync.constants.enums import WebhookAction


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


@dataclass
class AuthContext:
    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime | None = None

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass
class RequestDefinition:
    method: HttpMethod
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    cost: int = 1


@dataclass
class ApiResponse:
    status_code: int
    data: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"
    scope: str | None = None


@dataclass
class WorkspaceInfo:
    workspace_id: str
    name: str | None = None
    url: str | None = None
    account_id: str | None = None
    account_name: str | None = None
    account_email: str | None = None

    def to_metadata(self) -> dict[str, Any]:
        return {
            "workspace_name": self.name,
            "workspace_url": self.url,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "account_email": self.account_email,
        }


@dataclass
class UnifiedParentUnit:
    external_id: str
    key: str
    name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    action: WebhookAction
    parent_key: str
    item_id: str
    event_type: str
    raw_data: dict[str, Any] = field(default_factory=dict)


class NormalizedItemBase(BaseModel):
    external_id: str = Field(min_length=1)
    external_key: str | None = None
    title: str | None = None
    status: str | None = None
    item_type: str | None = None
    remote_created_at: datetime | None = None
    remote_updated_at: datetime | None = None
    comments: list[dict[str, Any]] | None = None
    attachments: list[dict[str, Any]] | None = None
    history: list[dict[str, Any]] | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict, repr=False)

    def extra_fields(self) -> dict[str, Any]:
        shared = set(NormalizedItemBase.model_fields) | {"kind"}
        return self.model_dump(mode="json", exclude=shared)


class IssueItem(NormalizedItemBase):
    kind: Literal["issue"] = "issue"
    description: str | None = None
    priority: str | None = None
    assignee: str | None = None
    reporter: str | None = None
    labels: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)


class MessageItem(NormalizedItemBase):
    kind: Literal["message"] = "message"
    body: str | None = None
    content_type: str | None = None
    author: str | None = None
    author_id: str | None = None
    reply_to_id: str | None = None
    importance: str | None = None
    web_url: str | None = None


class IncidentItem(NormalizedItemBase):
    kind: Literal["incident"] = "incident"
    number: str | None = None
    description: str | None = None
    priority: str | None = None
    urgency: str | None = None
    impact: str | None = None
    assigned_to: str | None = None
    category: str | None = None


NormalizedItem = Annotated[
    IssueItem | MessageItem | IncidentItem, Field(discriminator="kind")
]
