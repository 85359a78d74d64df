"""
Abstract repository interface for project persistence.

This module defines the contract that any database implementation must follow,
allowing easy swapping between SQLite, PostgreSQL, MySQL, etc.
"""

from abc import ABC, abstractmethod

from .models import Project


class ProjectRepository(ABC):
    """
    Abstract base class for project storage operations.

    Implementations must provide async-safe access to project data
    and handle their own connection management.
    """

    @abstractmethod
    async def create_project(self, project: Project) -> None:
        """
        Create a new project.

        Args:
            project: Project object to persist

        Raises:
            Exception: If a project with the same ID already exists
        """
        pass

    @abstractmethod
    async def get_project(self, project_id: str) -> Project | None:
        """
        Retrieve a project by its ID.

        Args:
            project_id: ID of the project to retrieve

        Returns:
            Project object if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """
        List all projects ordered by ID.

        Returns:
            List of all projects
        """
        pass

    @abstractmethod
    async def set_secret(self, project_id: str, key: str, value: str) -> None:
        """
        Set (or replace) a secret on a project.

        Args:
            project_id: ID of the project
            key: Secret name, e.g. "eventGridToken"
            value: Secret value

        Raises:
            ProjectNotFoundError: If project not found
        """
        pass

    @abstractmethod
    async def delete_project(self, project_id: str) -> bool:
        """
        Delete a project and its secrets.

        Args:
            project_id: ID of the project to delete

        Returns:
            True if a project was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
