import re
from typing import Any

from connector_sync.integrations.core.types import MessageItem, UnifiedParentUnit
from connector_sync.utils.dates import parse_remote_datetime

_TAG_PATTERN = re.compile(r"<[^>]+>")
_TITLE_LENGTH = 120


def adapt_teams_channel(
    raw_channel: dict[str, Any], team: dict[str, Any]
) -> UnifiedParentUnit:
    team_name = team.get("displayName") or team.get("id")
    return UnifiedParentUnit(
        external_id=raw_channel.get("id", ""),
        key=raw_channel.get("id", ""),
        name=f"{team_name} / {raw_channel.get('displayName')}",
        metadata={
            "team_id": team.get("id"),
            "team_name": team.get("displayName"),
            "membership_type": raw_channel.get("membershipType"),
            "web_url": raw_channel.get("webUrl"),
        },
    )


def _message_title(raw_message: dict[str, Any], body_text: str | None) -> str | None:
    if raw_message.get("subject"):
        return raw_message["subject"]
    if not body_text:
        return None
    plain = _TAG_PATTERN.sub("", body_text).strip()
    return plain[:_TITLE_LENGTH] or None


def adapt_teams_attachment(raw_attachment: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": raw_attachment.get("id"),
        "name": raw_attachment.get("name"),
        "content_type": raw_attachment.get("contentType"),
        "content_url": raw_attachment.get("contentUrl"),
    }


def adapt_teams_message(raw_message: dict[str, Any]) -> MessageItem:
    body = raw_message.get("body") or {}
    sender = (raw_message.get("from") or {}).get("user") or {}
    body_text = body.get("content")

    return MessageItem.model_validate(
        {
            "external_id": raw_message.get("id") or "",
            "title": _message_title(raw_message, body_text),
            "status": "deleted" if raw_message.get("deletedDateTime") else "active",
            "item_type": raw_message.get("messageType"),
            "remote_created_at": parse_remote_datetime(raw_message.get("createdDateTime")),
            "remote_updated_at": parse_remote_datetime(
                raw_message.get("lastModifiedDateTime")
                or raw_message.get("lastEditedDateTime")
            ),
            "body": body_text,
            "content_type": body.get("contentType"),
            "author": sender.get("displayName"),
            "author_id": sender.get("id"),
            "reply_to_id": raw_message.get("replyToId"),
            "importance": raw_message.get("importance"),
            "web_url": raw_message.get("webUrl"),
            "attachments": [
                adapt_teams_attachment(a) for a in raw_message.get("attachments") or []
            ],
            "raw_data": raw_message,
        }
    )
