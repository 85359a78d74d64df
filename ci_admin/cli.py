"""
Admin CLI for managing gateway projects.

Provides commands for CRUD operations on projects and their delivery tokens,
and for creating the Event Grid subscriptions that deliver to the gateway.
"""

import asyncio
import json
import os
import re
import secrets
import sys

import click

from ci_common.errors import ProjectNotFoundError
from ci_common.models import TOKEN_SECRET, Project
from ci_persistence.sqlite_repository import SQLiteProjectRepository

from .subscription import AzureCredentials, create_event_subscription


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return os.environ.get("CI_DB_PATH", "ci_projects.db")


def get_repository() -> SQLiteProjectRepository:
    """Get the repository instance."""
    return SQLiteProjectRepository(get_db_path())


def validate_repo_name(repo_name: str) -> bool:
    """Validate "owner/name" repository format."""
    return re.match(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$", repo_name) is not None


def generate_token() -> str:
    """Generate a URL-safe delivery token."""
    return secrets.token_urlsafe(24)


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


@click.group()
def cli():
    """CI Admin - Manage gateway projects and their event subscriptions."""
    pass


@cli.group()
def project():
    """Manage projects."""
    pass


@project.command("create")
@click.option("--id", "project_id", required=True, help="Project ID used in gateway URLs")
@click.option("--repo-name", required=True, help="Repository name (owner/name)")
@click.option(
    "--with-token", is_flag=True, help="Generate an eventGridToken for the project"
)
def project_create(project_id: str, repo_name: str, with_token: bool):
    """Create a new project."""
    if not validate_repo_name(repo_name):
        click.echo(f"Error: Invalid repository name: {repo_name}", err=True)
        sys.exit(1)

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            if await repo.get_project(project_id):
                click.echo(f"Error: Project {project_id} already exists", err=True)
                sys.exit(1)

            token = generate_token() if with_token else None
            project_obj = Project(
                id=project_id,
                repo_name=repo_name,
                secrets={TOKEN_SECRET: token} if token else {},
            )
            await repo.create_project(project_obj)

            click.echo("✓ Project created successfully")
            click.echo(f"  ID:        {project_obj.id}")
            click.echo(f"  Repo:      {project_obj.repo_name}")
            if token:
                click.echo(f"  Token:     {token}")
                click.echo("\n⚠ Save this token now. It is part of the delivery URL.")

        finally:
            await repo.close()

    run_async(create())


@project.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def project_list(json_output: bool):
    """List all projects."""

    async def list_projects():
        repo = get_repository()
        await repo.initialize()

        try:
            projects = await repo.list_projects()

            if json_output:
                click.echo(json.dumps([p.to_dict() for p in projects], indent=2))
                return

            if not projects:
                click.echo("No projects found.")
                return

            click.echo(f"\n{'ID':<30} {'Repository':<40} {'Token':<8}")
            click.echo("-" * 80)
            for p in projects:
                has_token = "yes" if TOKEN_SECRET in p.secrets else "no"
                click.echo(f"{p.id:<30} {p.repo_name:<40} {has_token:<8}")
            click.echo()

        finally:
            await repo.close()

    run_async(list_projects())


@project.command("get")
@click.argument("project_id")
def project_get(project_id: str):
    """Get project details by ID."""

    async def get_project():
        repo = get_repository()
        await repo.initialize()

        try:
            project_obj = await repo.get_project(project_id)
            if not project_obj:
                click.echo(f"Error: Project not found: {project_id}", err=True)
                sys.exit(1)

            click.echo("\nProject Details:")
            click.echo(f"  ID:       {project_obj.id}")
            click.echo(f"  Repo:     {project_obj.repo_name}")
            click.echo(f"  Secrets:  {', '.join(sorted(project_obj.secrets)) or '-'}")
            click.echo()

        finally:
            await repo.close()

    run_async(get_project())


@project.command("set-token")
@click.argument("project_id")
@click.option("--token", help="Token to set (default: generate one)")
def project_set_token(project_id: str, token: str | None):
    """Set or rotate a project's delivery token."""

    async def set_token():
        repo = get_repository()
        await repo.initialize()

        try:
            new_token = token or generate_token()
            try:
                await repo.set_secret(project_id, TOKEN_SECRET, new_token)
            except ProjectNotFoundError:
                click.echo(f"Error: Project not found: {project_id}", err=True)
                sys.exit(1)

            click.echo(f"✓ Token updated for {project_id}")
            click.echo(f"  Token: {new_token}")

        finally:
            await repo.close()

    run_async(set_token())


@project.command("delete")
@click.argument("project_id")
@click.confirmation_option(prompt="Are you sure you want to delete this project?")
def project_delete(project_id: str):
    """Delete a project."""

    async def delete():
        repo = get_repository()
        await repo.initialize()

        try:
            if not await repo.delete_project(project_id):
                click.echo(f"Error: Project not found: {project_id}", err=True)
                sys.exit(1)
            click.echo(f"✓ Project {project_id} deleted")

        finally:
            await repo.close()

    run_async(delete())


@cli.group()
def subscription():
    """Manage Event Grid subscriptions that deliver to the gateway."""
    pass


@subscription.command("create")
@click.option(
    "--resource-group", envvar="RESOURCE_GROUP", required=True, help="Resource group"
)
@click.option(
    "--storage-account",
    envvar="STORAGE_ACCOUNT",
    required=True,
    help="Storage account whose blob events are delivered",
)
@click.option(
    "--name",
    envvar="EVENTGRID_SUBSCRIPTION_NAME",
    required=True,
    help="Event subscription name",
)
@click.option(
    "--webhook-url",
    envvar="WEBHOOK_URL",
    required=True,
    help="Gateway URL, e.g. https://host/eventgrid/<project>/<token>",
)
def subscription_create(
    resource_group: str, storage_account: str, name: str, webhook_url: str
):
    """Create or update an Event Grid subscription (AZ_* credentials from env)."""
    try:
        credentials = AzureCredentials.from_env()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        resource = create_event_subscription(
            credentials, resource_group, storage_account, name, webhook_url
        )
    except RuntimeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Event subscription {name} created")
    click.echo(f"  ID:       {resource.get('id', '-')}")
    click.echo(f"  Endpoint: {webhook_url}")


if __name__ == "__main__":
    cli()
