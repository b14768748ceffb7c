from typing import Any

from connector_sync.integrations.core.types import IssueItem, UnifiedParentUnit
from connector_sync.utils.dates import parse_remote_datetime


def adf_to_text(node: Any) -> str | None:
    """Flatten an Atlassian Document Format tree into plain text."""
    if node is None:
        return None
    if isinstance(node, str):
        return node

    lines: list[str] = []

    def walk(current: dict[str, Any], buffer: list[str]) -> None:
        if current.get("type") == "text":
            buffer.append(current.get("text", ""))
        for child in current.get("content") or []:
            if isinstance(child, dict):
                walk(child, buffer)

    for block in node.get("content") or []:
        if not isinstance(block, dict):
            continue
        buffer: list[str] = []
        walk(block, buffer)
        lines.append("".join(buffer))

    text = "\n".join(lines).strip()
    return text or None


def _display_name(user: dict[str, Any] | None) -> str | None:
    if not user:
        return None
    return user.get("displayName") or user.get("emailAddress")


def adapt_jira_project(raw_project: dict[str, Any]) -> UnifiedParentUnit:
    return UnifiedParentUnit(
        external_id=str(raw_project.get("id", "")),
        key=raw_project.get("key", ""),
        name=raw_project.get("name"),
        metadata={
            "project_type": raw_project.get("projectTypeKey"),
            "style": raw_project.get("style"),
        },
    )


def adapt_jira_projects(raw_projects: list[dict[str, Any]]) -> list[UnifiedParentUnit]:
    return [adapt_jira_project(p) for p in raw_projects if p.get("id") and p.get("key")]


def adapt_jira_comment(raw_comment: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": raw_comment.get("id"),
        "author": _display_name(raw_comment.get("author")),
        "body": adf_to_text(raw_comment.get("body")),
        "created": raw_comment.get("created"),
        "updated": raw_comment.get("updated"),
    }


def adapt_jira_attachment(raw_attachment: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": raw_attachment.get("id"),
        "filename": raw_attachment.get("filename"),
        "size": raw_attachment.get("size"),
        "mime_type": raw_attachment.get("mimeType"),
        "created": raw_attachment.get("created"),
        "author": _display_name(raw_attachment.get("author")),
    }


def adapt_jira_history(raw_history: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": raw_history.get("id"),
        "author": _display_name(raw_history.get("author")),
        "created": raw_history.get("created"),
        "items": [
            {
                "field": item.get("field"),
                "from": item.get("fromString"),
                "to": item.get("toString"),
            }
            for item in raw_history.get("items") or []
        ],
    }


def adapt_jira_issue(raw_issue: dict[str, Any]) -> IssueItem:
    fields = raw_issue.get("fields") or {}
    comment_block = fields.get("comment") or {}
    changelog = raw_issue.get("changelog") or {}

    custom_fields = {
        key: value
        for key, value in fields.items()
        if key.startswith("customfield_") and value is not None
    }

    return IssueItem.model_validate(
        {
            "external_id": str(raw_issue.get("id") or ""),
            "external_key": raw_issue.get("key"),
            "title": fields.get("summary"),
            "status": (fields.get("status") or {}).get("name"),
            "item_type": (fields.get("issuetype") or {}).get("name"),
            "remote_created_at": parse_remote_datetime(fields.get("created")),
            "remote_updated_at": parse_remote_datetime(fields.get("updated")),
            "description": adf_to_text(fields.get("description")),
            "priority": (fields.get("priority") or {}).get("name"),
            "assignee": _display_name(fields.get("assignee")),
            "reporter": _display_name(fields.get("reporter")),
            "labels": fields.get("labels") or [],
            "custom_fields": custom_fields,
            "comments": [
                adapt_jira_comment(c) for c in comment_block.get("comments") or []
            ],
            "attachments": [
                adapt_jira_attachment(a) for a in fields.get("attachment") or []
            ],
            "history": [
                adapt_jira_history(h) for h in changelog.get("histories") or []
            ],
            "raw_data": raw_issue,
        }
    )
