"""
Pytest configuration for the HR Consultant MCP Server tests.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio

from mcp_hr.store import SQLiteEntityStore, StoreSession
from mcp_hr.widgets import WIDGET_DEFINITIONS, WidgetRegistry

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]

BASE_URL = "https://hr.example.com"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


# =============================================================================
# Sample Data
# =============================================================================

CONSULTANTS = [
    {
        "id": "1",
        "name": "Avery Howard",
        "email": "avery@treyresearch.com",
        "phone": "+1 555 0101",
        "consultantPhotoUrl": "https://example.com/avery.jpg",
        "location": {"city": "Seattle", "country": "USA"},
        "skills": ["Python", "Azure", "React"],
        "certifications": ["Azure Developer Associate"],
        "roles": ["Architect", "Developer"],
    },
    {
        "id": "2",
        "name": "Dominique Rivera",
        "email": "dominique@treyresearch.com",
        "phone": "+1 555 0102",
        "consultantPhotoUrl": "",
        "location": {"city": "Lyon", "country": "France"},
        "skills": ["TypeScript", "React"],
        "certifications": [],
        "roles": ["Developer"],
    },
    {
        "id": "3",
        "name": "Sanjay Patel",
        "email": "sanjay@treyresearch.com",
        "phone": "+1 555 0103",
        "consultantPhotoUrl": "",
        "location": {"city": "Pune", "country": "India"},
        "skills": ["Data Science", "Python"],
        "certifications": [],
        "roles": ["Analyst"],
    },
]

PROJECTS = [
    {
        "id": "1",
        "name": "Contoso Portal",
        "description": "Customer self-service portal",
        "clientName": "Contoso",
        "clientContact": "Jo Bloggs",
        "clientEmail": "jo@contoso.com",
        "location": {"city": "Redmond", "country": "USA"},
    },
    {
        "id": "2",
        "name": "Fabrikam Analytics",
        "description": "Sales analytics platform",
        "clientName": "Fabrikam",
        "clientContact": "Lee Chen",
        "clientEmail": "lee@fabrikam.com",
        "location": {"city": "London", "country": "UK"},
    },
]

ASSIGNMENTS = [
    {
        "id": "1,1",
        "projectId": "1",
        "consultantId": "1",
        "role": "Architect",
        "billable": True,
        "rate": 150,
        "forecast": [
            {"month": 1, "year": 2025, "hours": 40},
            {"month": 2, "year": 2025, "hours": 20},
        ],
        "delivered": [],
    },
    {
        "id": "1,2",
        "projectId": "1",
        "consultantId": "2",
        "role": "Developer",
        "billable": False,
        "rate": 0,
        "forecast": [{"month": 1, "year": 2025, "hours": 30}],
        "delivered": [],
    },
    {
        "id": "2,3",
        "projectId": "2",
        "consultantId": "3",
        "role": "Analyst",
        "billable": True,
        "rate": 120,
        "forecast": [{"month": 1, "year": 2025, "hours": 10}],
        "delivered": [],
    },
]


def widget_markup(widget_id: str) -> str:
    return f"<!DOCTYPE html><html lang=\"en\"><body><div id=\"{widget_id}\"></div></body></html>"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Directory holding markup for every defined widget."""
    directory = tmp_path / "assets"
    directory.mkdir()
    for definition in WIDGET_DEFINITIONS:
        (directory / f"{definition.id}.html").write_text(
            widget_markup(definition.id), encoding="utf-8"
        )
    return directory


@pytest.fixture
def widget_registry(assets_dir: Path) -> WidgetRegistry:
    return WidgetRegistry(assets_dir, base_url=BASE_URL)


@pytest_asyncio.fixture
async def loaded_registry(widget_registry: WidgetRegistry) -> WidgetRegistry:
    await widget_registry.load()
    return widget_registry


@pytest.fixture
def seed_dir(tmp_path: Path) -> Path:
    """Directory with Consultant.json, Project.json and Assignment.json."""
    directory = tmp_path / "db"
    directory.mkdir()
    for filename, rows in (
        ("Consultant.json", CONSULTANTS),
        ("Project.json", PROJECTS),
        ("Assignment.json", ASSIGNMENTS),
    ):
        (directory / filename).write_text(json.dumps({"rows": rows}), encoding="utf-8")
    return directory


@pytest_asyncio.fixture
async def entity_store(tmp_path: Path, seed_dir: Path) -> SQLiteEntityStore:
    """Seeded SQLite entity store."""
    store = SQLiteEntityStore(tmp_path / "data" / "hr.db")
    await store.seed_from_directory(seed_dir)
    return store


@pytest_asyncio.fixture
async def store_session(entity_store: SQLiteEntityStore) -> AsyncIterator[StoreSession]:
    session = entity_store.open_session()
    yield session
    session.close()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove deployment variables that would leak into config loading."""
    for name in ("PORT", "SERVER_BASE_URL", "ADDITIONAL_ALLOWED_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("MCP_HR_"):
            monkeypatch.delenv(name)
    yield
