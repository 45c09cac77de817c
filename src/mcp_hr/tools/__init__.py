"""
HR tools for the HR Consultant MCP Server.

TOOL_SPECS is the hard-coded tool table served by every request's catalog.

Modules:
- dashboard: dashboard, search and bulk editor views
- consultants: consultant profile and updates
- projects: project details
"""

from mcp_hr.catalog import NoArguments, ToolAnnotations, ToolSpec
from mcp_hr.tools.consultants import (
    BulkUpdateArguments,
    ConsultantProfileArguments,
    ConsultantUpdate,
    handle_bulk_update_consultants,
    handle_show_consultant_profile,
    handle_update_consultant,
)
from mcp_hr.tools.dashboard import (
    SearchConsultantsArguments,
    handle_search_consultants,
    handle_show_bulk_editor,
    handle_show_hr_dashboard,
)
from mcp_hr.tools.projects import ProjectDetailsArguments, handle_show_project_details
from mcp_hr.widgets import (
    BULK_EDITOR_WIDGET_ID,
    DASHBOARD_WIDGET_ID,
    PROFILE_WIDGET_ID,
)

READ_ONLY = ToolAnnotations(read_only=True)
DESTRUCTIVE = ToolAnnotations(destructive=True)

TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="show-hr-dashboard",
        title="Show HR Dashboard",
        description=(
            "Display the HR consultant dashboard with KPIs: consultant count, "
            "project count, total billable hours, and utilization data."
        ),
        arguments=NoArguments,
        handler=handle_show_hr_dashboard,
        annotations=READ_ONLY,
        widget_id=DASHBOARD_WIDGET_ID,
    ),
    ToolSpec(
        name="show-consultant-profile",
        title="Show Consultant Profile",
        description=(
            "Display a detailed profile card for a specific consultant, including "
            "contact info, skills, certifications, roles, and current assignments."
        ),
        arguments=ConsultantProfileArguments,
        handler=handle_show_consultant_profile,
        annotations=READ_ONLY,
        widget_id=PROFILE_WIDGET_ID,
    ),
    ToolSpec(
        name="search-consultants",
        title="Search Consultants",
        description=(
            "Search consultants by skill or name. Returns matching consultants "
            "shown in the dashboard widget."
        ),
        arguments=SearchConsultantsArguments,
        handler=handle_search_consultants,
        annotations=READ_ONLY,
        widget_id=DASHBOARD_WIDGET_ID,
    ),
    ToolSpec(
        name="show-bulk-editor",
        title="Show Bulk Editor",
        description=(
            "Open the bulk editor widget to view and edit multiple consultant "
            "records at once, including skills, roles, contact details."
        ),
        arguments=NoArguments,
        handler=handle_show_bulk_editor,
        annotations=ToolAnnotations(),
        widget_id=BULK_EDITOR_WIDGET_ID,
    ),
    ToolSpec(
        name="update-consultant",
        title="Update Consultant",
        description=(
            "Update a single consultant's information (name, email, phone, skills, roles)."
        ),
        arguments=ConsultantUpdate,
        handler=handle_update_consultant,
        annotations=DESTRUCTIVE,
    ),
    ToolSpec(
        name="bulk-update-consultants",
        title="Bulk Update Consultants",
        description="Batch-update multiple consultant records at once.",
        arguments=BulkUpdateArguments,
        handler=handle_bulk_update_consultants,
        annotations=DESTRUCTIVE,
    ),
    ToolSpec(
        name="show-project-details",
        title="Show Project Details",
        description=(
            "Display detailed information about a specific project including its "
            "assigned consultants and forecasted hours."
        ),
        arguments=ProjectDetailsArguments,
        handler=handle_show_project_details,
        annotations=READ_ONLY,
        widget_id=DASHBOARD_WIDGET_ID,
    ),
)

__all__ = [
    "TOOL_SPECS",
    "handle_show_hr_dashboard",
    "handle_search_consultants",
    "handle_show_bulk_editor",
    "handle_show_consultant_profile",
    "handle_update_consultant",
    "handle_bulk_update_consultants",
    "handle_show_project_details",
]
