"""
Conversion of stored entity records into tool payload objects.

The store hands back nested attributes as JSON strings; these helpers parse
them and rename storage keys (rowKey, consultantPhotoUrl) to payload keys.
"""

from __future__ import annotations

import json
from typing import Any

from mcp_hr.errors import FailedPreconditionError

UNKNOWN = "Unknown"


def parse_json_attribute(record: dict[str, Any], key: str, default: Any) -> Any:
    """
    Parse a JSON-string attribute, returning default when it is empty.

    Raises:
        FailedPreconditionError: If the stored value is not valid JSON.
    """
    raw = record.get(key)
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise FailedPreconditionError(
            f"Stored attribute '{key}' of {record.get('rowKey')} is not valid JSON.",
            details={"rowKey": record.get("rowKey"), "attribute": key},
        ) from e


def parse_consultant(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["rowKey"],
        "name": record.get("name", ""),
        "email": record.get("email", ""),
        "phone": record.get("phone", ""),
        "photoUrl": record.get("consultantPhotoUrl", ""),
        "location": parse_json_attribute(record, "location", {}),
        "skills": parse_json_attribute(record, "skills", []),
        "certifications": parse_json_attribute(record, "certifications", []),
        "roles": parse_json_attribute(record, "roles", []),
    }


def parse_project(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["rowKey"],
        "name": record.get("name", ""),
        "description": record.get("description", ""),
        "clientName": record.get("clientName", ""),
        "clientContact": record.get("clientContact", ""),
        "clientEmail": record.get("clientEmail", ""),
        "location": parse_json_attribute(record, "location", {}),
    }


def parse_assignment(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["rowKey"],
        "projectId": record.get("projectId", ""),
        "consultantId": record.get("consultantId", ""),
        "role": record.get("role", ""),
        "billable": bool(record.get("billable", False)),
        "rate": record.get("rate", 0),
        "forecast": parse_json_attribute(record, "forecast", []),
        "delivered": parse_json_attribute(record, "delivered", []),
    }


def forecast_hours(assignment: dict[str, Any]) -> float:
    """Sum the forecast hours of a parsed assignment."""
    return sum(entry.get("hours", 0) for entry in assignment["forecast"])
