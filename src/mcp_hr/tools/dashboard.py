"""
Dashboard tools for the HR Consultant MCP Server.

This module implements:
- show-hr-dashboard: KPIs over all consultants, projects and assignments
- search-consultants: consultants filtered by skill and/or name
- show-bulk-editor: every consultant record, for the bulk editor widget
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field

from mcp_hr.catalog import NoArguments, ToolArguments, ToolResult
from mcp_hr.logging import get_logger
from mcp_hr.records import (
    UNKNOWN,
    forecast_hours,
    parse_assignment,
    parse_consultant,
    parse_json_attribute,
    parse_project,
)
from mcp_hr.store import ASSIGNMENT, CONSULTANT, PROJECT

if TYPE_CHECKING:
    from mcp_hr.store import EntityStore

logger = get_logger(__name__)


class SearchConsultantsArguments(ToolArguments):
    skill: str | None = Field(
        default=None,
        description="Skill to search for (partial match).",
    )
    name: str | None = Field(
        default=None,
        description="Name to search for (partial match).",
    )


# =============================================================================
# show-hr-dashboard
# =============================================================================


async def handle_show_hr_dashboard(
    _args: NoArguments, store: EntityStore
) -> ToolResult:
    """
    Build the dashboard payload.

    Assignments are enriched with project, client and consultant names
    ("Unknown" when the referenced record is gone). Billable hours are the
    forecast hours of billable assignments.
    """
    consultants = await store.list_all(CONSULTANT)
    projects = await store.list_all(PROJECT)
    assignments = [parse_assignment(a) for a in await store.list_all(ASSIGNMENT)]

    projects_by_id = {p["rowKey"]: p for p in projects}
    consultants_by_id = {c["rowKey"]: c for c in consultants}

    total_billable_hours = sum(
        forecast_hours(a) for a in assignments if a["billable"]
    )

    enriched: list[dict[str, Any]] = []
    for assignment in assignments:
        project = projects_by_id.get(assignment["projectId"])
        consultant = consultants_by_id.get(assignment["consultantId"])
        enriched.append(
            {
                **assignment,
                "projectName": project.get("name", UNKNOWN) if project else UNKNOWN,
                "clientName": project.get("clientName", UNKNOWN) if project else UNKNOWN,
                "consultantName": (
                    consultant.get("name", UNKNOWN) if consultant else UNKNOWN
                ),
            }
        )

    payload = {
        "consultants": [parse_consultant(c) for c in consultants],
        "projects": [parse_project(p) for p in projects],
        "assignments": enriched,
        "summary": {
            "totalConsultants": len(consultants),
            "totalProjects": len(projects),
            "totalAssignments": len(assignments),
            "totalBillableHours": total_billable_hours,
        },
    }

    return ToolResult(
        summary=(
            f"HR Dashboard: {len(consultants)} consultants, {len(projects)} projects, "
            f"{total_billable_hours} billable hours forecasted."
        ),
        payload=payload,
    )


# =============================================================================
# search-consultants
# =============================================================================


def _matches_skill(consultant: dict[str, Any], skill: str) -> bool:
    needle = skill.lower()
    skills = parse_json_attribute(consultant, "skills", [])
    return any(needle in str(s).lower() for s in skills)


async def handle_search_consultants(
    args: SearchConsultantsArguments, store: EntityStore
) -> ToolResult:
    """Filter consultants by case-insensitive partial skill and name matches."""
    results = await store.list_all(CONSULTANT)

    if args.skill:
        results = [c for c in results if _matches_skill(c, args.skill)]
    if args.name:
        needle = args.name.lower()
        results = [c for c in results if needle in str(c.get("name", "")).lower()]

    logger.debug(
        "Consultant search",
        extra={"skill": args.skill, "name": args.name, "matches": len(results)},
    )

    payload = {
        "consultants": [parse_consultant(c) for c in results],
        "projects": [],
        "summary": {
            "totalConsultants": len(results),
            "totalProjects": 0,
            "totalAssignments": 0,
            "totalBillableHours": 0,
            "searchApplied": True,
            "searchCriteria": args.model_dump(exclude_none=True),
        },
    }

    return ToolResult(
        summary=f"Found {len(results)} consultant(s) matching criteria.",
        payload=payload,
    )


# =============================================================================
# show-bulk-editor
# =============================================================================


async def handle_show_bulk_editor(
    _args: NoArguments, store: EntityStore
) -> ToolResult:
    consultants = await store.list_all(CONSULTANT)
    return ToolResult(
        summary=f"Bulk editor loaded with {len(consultants)} consultant records.",
        payload={"consultants": [parse_consultant(c) for c in consultants]},
    )
