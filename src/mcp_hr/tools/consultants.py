"""
Consultant tools for the HR Consultant MCP Server.

This module implements:
- show-consultant-profile: one consultant with their assignments
- update-consultant: change one consultant's contact details, skills or roles
- bulk-update-consultants: apply several consultant updates in one call

Missing consultants are reported with NotFoundError, which the dispatcher
turns into an error result rather than a protocol error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field

from mcp_hr.catalog import ToolArguments, ToolResult
from mcp_hr.errors import NotFoundError
from mcp_hr.logging import get_logger
from mcp_hr.records import UNKNOWN, parse_assignment, parse_consultant, parse_project
from mcp_hr.store import CONSULTANT, PROJECT, assignments_for_consultant

if TYPE_CHECKING:
    from mcp_hr.store import EntityStore

logger = get_logger(__name__)


class ConsultantProfileArguments(ToolArguments):
    consultantId: str = Field(description="The ID of the consultant to view.")


class ConsultantUpdate(ToolArguments):
    """Fields of one consultant update; omitted fields are left unchanged."""

    consultantId: str = Field(description="The ID of the consultant to update.")
    name: str | None = Field(default=None, description="Updated name.")
    email: str | None = Field(default=None, description="Updated email.")
    phone: str | None = Field(default=None, description="Updated phone.")
    skills: list[str] | None = Field(default=None, description="Updated skills list.")
    roles: list[str] | None = Field(default=None, description="Updated roles list.")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"consultantId"})


class BulkUpdateArguments(ToolArguments):
    updates: list[ConsultantUpdate] = Field(
        description="Array of consultant updates.",
    )


def _consultant_not_found(consultant_id: str) -> NotFoundError:
    return NotFoundError(
        f"Consultant {consultant_id} not found.",
        details={"consultantId": consultant_id},
    )


# =============================================================================
# show-consultant-profile
# =============================================================================


async def handle_show_consultant_profile(
    args: ConsultantProfileArguments, store: EntityStore
) -> ToolResult:
    """
    Return a consultant and their assignments, enriched with project names.

    Raises:
        NotFoundError: If the consultant does not exist.
    """
    consultant = await store.get_by_id(CONSULTANT, args.consultantId)
    if consultant is None:
        raise _consultant_not_found(args.consultantId)

    assignments = await assignments_for_consultant(store, args.consultantId)
    projects = {p["rowKey"]: parse_project(p) for p in await store.list_all(PROJECT)}

    enriched = []
    for record in assignments:
        assignment = parse_assignment(record)
        project = projects.get(assignment["projectId"])
        enriched.append(
            {
                **assignment,
                "projectName": project["name"] if project else UNKNOWN,
                "clientName": project["clientName"] if project else UNKNOWN,
            }
        )

    profile = parse_consultant(consultant)
    skills = ", ".join(str(s) for s in profile["skills"])

    return ToolResult(
        summary=(
            f"Profile for {profile['name']}: {skills} | "
            f"{len(enriched)} active assignment(s)."
        ),
        payload={"consultant": profile, "assignments": enriched},
    )


# =============================================================================
# update-consultant
# =============================================================================


async def handle_update_consultant(
    args: ConsultantUpdate, store: EntityStore
) -> ToolResult:
    """
    Raises:
        NotFoundError: If the consultant does not exist.
    """
    updated = await store.update(CONSULTANT, args.consultantId, args.changes())
    if updated is None:
        raise _consultant_not_found(args.consultantId)

    logger.info(
        "Consultant updated",
        extra={"consultant_id": args.consultantId, "fields": sorted(args.changes())},
    )
    return ToolResult(
        summary=f"Updated consultant {updated.get('name')} (ID: {args.consultantId}).",
    )


# =============================================================================
# bulk-update-consultants
# =============================================================================


async def handle_bulk_update_consultants(
    args: BulkUpdateArguments, store: EntityStore
) -> ToolResult:
    """Apply each update in order; a missing consultant does not stop the batch."""
    lines: list[str] = []
    for update in args.updates:
        updated = await store.update(CONSULTANT, update.consultantId, update.changes())
        if updated is None:
            lines.append(f"✗ Consultant {update.consultantId} not found")
        else:
            lines.append(f"✓ Updated {updated.get('name')}")

    logger.info(
        "Bulk consultant update",
        extra={"requested": len(args.updates)},
    )
    return ToolResult(summary="Bulk update complete:\n" + "\n".join(lines))
