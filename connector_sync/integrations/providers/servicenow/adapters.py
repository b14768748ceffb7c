from typing import Any

from connector_sync.integrations.core.types import IncidentItem
from connector_sync.utils.dates import parse_remote_datetime


def field_value(record: dict[str, Any], name: str, display: bool = False) -> Any:
    """Read a field returned with ``sysparm_display_value=all``."""
    raw = record.get(name)
    if isinstance(raw, dict):
        value = raw.get("display_value") if display else raw.get("value")
        return value if value != "" else None
    return raw if raw != "" else None


def adapt_servicenow_record(raw_record: dict[str, Any]) -> IncidentItem:
    journal = field_value(raw_record, "comments", display=True)
    return IncidentItem.model_validate(
        {
            "external_id": field_value(raw_record, "sys_id") or "",
            "external_key": field_value(raw_record, "number"),
            "title": field_value(raw_record, "short_description"),
            "status": field_value(raw_record, "state", display=True),
            "item_type": field_value(raw_record, "sys_class_name"),
            "remote_created_at": parse_remote_datetime(
                field_value(raw_record, "sys_created_on")
            ),
            "remote_updated_at": parse_remote_datetime(
                field_value(raw_record, "sys_updated_on")
            ),
            "number": field_value(raw_record, "number"),
            "description": field_value(raw_record, "description"),
            "priority": field_value(raw_record, "priority", display=True),
            "urgency": field_value(raw_record, "urgency", display=True),
            "impact": field_value(raw_record, "impact", display=True),
            "assigned_to": field_value(raw_record, "assigned_to", display=True),
            "category": field_value(raw_record, "category", display=True),
            "comments": [{"body": journal}] if journal else [],
            "raw_data": raw_record,
        }
    )
