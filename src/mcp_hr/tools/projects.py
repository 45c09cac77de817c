"""
Project tools for the HR Consultant MCP Server.

This module implements:
- show-project-details: a project, its assignments and assigned consultants
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from mcp_hr.catalog import ToolArguments, ToolResult
from mcp_hr.errors import NotFoundError
from mcp_hr.records import (
    UNKNOWN,
    forecast_hours,
    parse_assignment,
    parse_consultant,
    parse_project,
)
from mcp_hr.store import CONSULTANT, PROJECT, assignments_for_project

if TYPE_CHECKING:
    from mcp_hr.store import EntityStore


class ProjectDetailsArguments(ToolArguments):
    projectId: str = Field(description="The project ID.")


async def handle_show_project_details(
    args: ProjectDetailsArguments, store: EntityStore
) -> ToolResult:
    """
    Return a project with its assignments, the consultants on them and totals.

    Raises:
        NotFoundError: If the project does not exist.
    """
    project = await store.get_by_id(PROJECT, args.projectId)
    if project is None:
        raise NotFoundError(
            f"Project {args.projectId} not found.",
            details={"projectId": args.projectId},
        )

    assignments = await assignments_for_project(store, args.projectId)
    consultants = {
        c["rowKey"]: parse_consultant(c) for c in await store.list_all(CONSULTANT)
    }

    enriched = []
    for record in assignments:
        assignment = parse_assignment(record)
        consultant = consultants.get(assignment["consultantId"])
        enriched.append(
            {
                **assignment,
                "consultantName": consultant["name"] if consultant else UNKNOWN,
            }
        )

    details = parse_project(project)
    payload = {
        "project": details,
        "assignments": enriched,
        "consultants": [
            consultants[a["consultantId"]]
            for a in enriched
            if a["consultantId"] in consultants
        ],
        "summary": {
            "totalConsultants": len(enriched),
            "totalProjects": 1,
            "totalAssignments": len(enriched),
            "totalBillableHours": sum(forecast_hours(a) for a in enriched),
        },
    }

    return ToolResult(
        summary=(
            f'Project "{details["name"]}" for {details["clientName"]}: '
            f"{len(enriched)} assignment(s)."
        ),
        payload=payload,
    )
