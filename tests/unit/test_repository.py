"""
Unit tests for the SQLite project repository.
"""

import os
import tempfile

import pytest

from ci_common.errors import ProjectNotFoundError
from ci_common.models import TOKEN_SECRET, Project
from ci_persistence.sqlite_repository import SQLiteProjectRepository


@pytest.fixture
async def temp_db():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    repo = SQLiteProjectRepository(path)
    await repo.initialize()

    yield repo

    await repo.close()
    if os.path.exists(path):
        os.unlink(path)


@pytest.mark.asyncio
async def test_create_and_get_project(temp_db):
    await temp_db.create_project(
        Project(id="app", repo_name="example/app", secrets={TOKEN_SECRET: "t"})
    )

    project = await temp_db.get_project("app")

    assert project == Project(
        id="app", repo_name="example/app", secrets={TOKEN_SECRET: "t"}
    )


@pytest.mark.asyncio
async def test_get_nonexistent_project(temp_db):
    assert await temp_db.get_project("nope") is None


@pytest.mark.asyncio
async def test_list_projects_ordered_by_id(temp_db):
    await temp_db.create_project(Project(id="zeta", repo_name="example/zeta"))
    await temp_db.create_project(Project(id="alpha", repo_name="example/alpha"))

    projects = await temp_db.list_projects()

    assert [p.id for p in projects] == ["alpha", "zeta"]


@pytest.mark.asyncio
async def test_duplicate_project_rejected(temp_db):
    await temp_db.create_project(Project(id="app", repo_name="example/app"))

    with pytest.raises(Exception):
        await temp_db.create_project(Project(id="app", repo_name="example/other"))


@pytest.mark.asyncio
async def test_set_secret_inserts_and_replaces(temp_db):
    await temp_db.create_project(Project(id="app", repo_name="example/app"))

    await temp_db.set_secret("app", TOKEN_SECRET, "first")
    await temp_db.set_secret("app", TOKEN_SECRET, "second")

    project = await temp_db.get_project("app")
    assert project.secrets == {TOKEN_SECRET: "second"}


@pytest.mark.asyncio
async def test_set_secret_unknown_project(temp_db):
    with pytest.raises(ProjectNotFoundError):
        await temp_db.set_secret("nope", TOKEN_SECRET, "x")


@pytest.mark.asyncio
async def test_delete_project_removes_secrets(temp_db):
    await temp_db.create_project(
        Project(id="app", repo_name="example/app", secrets={TOKEN_SECRET: "t"})
    )

    assert await temp_db.delete_project("app") is True
    assert await temp_db.get_project("app") is None
    assert await temp_db.delete_project("app") is False

    await temp_db.create_project(Project(id="app", repo_name="example/app"))
    assert (await temp_db.get_project("app")).secrets == {}
