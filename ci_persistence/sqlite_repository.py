"""
SQLite implementation of the project repository.

Uses aiosqlite for async operations.
Can be easily replaced with PostgreSQL/MySQL implementations.
"""

from datetime import UTC, datetime

import aiosqlite

from ci_common.errors import ProjectNotFoundError
from ci_common.models import Project
from ci_common.repository import ProjectRepository


class SQLiteProjectRepository(ProjectRepository):
    """
    SQLite-based project storage implementation.

    Uses a single database file with two tables:
    - projects: Project identity and repository name
    - secrets: Key/value secrets with foreign key to projects
    """

    def __init__(self, db_path: str = "ci_projects.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            # Enable foreign key constraints
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """
        Create database tables if they don't exist.

        Schema:
        - projects table: id, repo_name, created_at
        - secrets table: (project_id, key) -> value
        """
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                repo_name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS secrets (
                project_id TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (project_id, key),
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            )
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def create_project(self, project: Project) -> None:
        """
        Create a new project along with its secrets.

        Args:
            project: Project object to persist
        """
        conn = await self._get_connection()

        await conn.execute(
            "INSERT INTO projects (id, repo_name, created_at) VALUES (?, ?, ?)",
            (project.id, project.repo_name, datetime.now(UTC).isoformat()),
        )
        await conn.executemany(
            "INSERT INTO secrets (project_id, key, value) VALUES (?, ?, ?)",
            [(project.id, key, value) for key, value in project.secrets.items()],
        )
        await conn.commit()

    async def _load_secrets(self, project_id: str) -> dict[str, str]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT key, value FROM secrets WHERE project_id = ? ORDER BY key",
            (project_id,),
        )
        rows = await cursor.fetchall()
        return {key: value for key, value in rows}

    async def get_project(self, project_id: str) -> Project | None:
        """
        Retrieve a project with its secrets.

        Args:
            project_id: ID of the project to retrieve

        Returns:
            Project object if found, None otherwise
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT id, repo_name FROM projects WHERE id = ?", (project_id,)
        )
        row = await cursor.fetchone()

        if row is None:
            return None

        pid, repo_name = row
        return Project(
            id=pid, repo_name=repo_name, secrets=await self._load_secrets(pid)
        )

    async def list_projects(self) -> list[Project]:
        """
        List all projects.

        Returns:
            List of Project objects ordered by ID
        """
        conn = await self._get_connection()

        cursor = await conn.execute("SELECT id, repo_name FROM projects ORDER BY id")
        rows = await cursor.fetchall()

        projects = []
        for pid, repo_name in rows:
            projects.append(
                Project(
                    id=pid, repo_name=repo_name, secrets=await self._load_secrets(pid)
                )
            )

        return projects

    async def set_secret(self, project_id: str, key: str, value: str) -> None:
        """
        Set (or replace) a project secret.

        Args:
            project_id: ID of the project
            key: Secret name
            value: Secret value

        Raises:
            ProjectNotFoundError: If project not found
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            "SELECT 1 FROM projects WHERE id = ?", (project_id,)
        )
        if await cursor.fetchone() is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")

        await conn.execute(
            """
            INSERT INTO secrets (project_id, key, value) VALUES (?, ?, ?)
            ON CONFLICT (project_id, key) DO UPDATE SET value = excluded.value
            """,
            (project_id, key, value),
        )
        await conn.commit()

    async def delete_project(self, project_id: str) -> bool:
        """
        Delete a project; secrets are removed by the cascade.

        Args:
            project_id: ID of the project

        Returns:
            True if a project was deleted
        """
        conn = await self._get_connection()

        cursor = await conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        await conn.commit()
        return cursor.rowcount > 0
