import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from ci_common.models import TOKEN_SECRET, Event, Project
from ci_common.repository import ProjectRepository
from ci_controller.container_manager import DockerJobEngine
from ci_controller.dispatcher import PipelineDispatcher
from ci_controller.router import EventRouter
from ci_controller.settings import PipelineSettings
from ci_persistence.sqlite_repository import SQLiteProjectRepository

from . import cloudevents, eventgrid
from .eventgrid import MalformedEventError

# Configure logging
logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
repository: ProjectRepository | None = None
router: EventRouter | None = None
dispatcher: PipelineDispatcher | None = None


def get_database_path() -> str:
    """
    Get the database path from environment or use default.

    Environment variables:
    - CI_DB_PATH: Custom database path (useful for testing)
    """
    return os.environ.get("CI_DB_PATH", "ci_projects.db")


def get_container_prefix() -> str:
    """
    Get the container name prefix from environment.

    Environment variables:
    - CI_CONTAINER_PREFIX: Prefix for job container names
    """
    return os.environ.get("CI_CONTAINER_PREFIX", "")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Startup: open the project store and wire router, engine and dispatcher.
    Shutdown: wait for in-flight pipelines, then close the store.
    """
    global repository, router, dispatcher

    sqlite_repository = SQLiteProjectRepository(get_database_path())
    await sqlite_repository.initialize()
    repository = sqlite_repository

    engine = DockerJobEngine(
        container_name_prefix=get_container_prefix(),
        source_dir=os.environ.get("CI_SOURCE_DIR") or None,
    )
    router = EventRouter()
    dispatcher = PipelineDispatcher(engine, PipelineSettings.from_env())
    dispatcher.register(router)
    logger.info(f"Gateway ready, handling events: {', '.join(router.event_names())}")

    yield

    logger.info("Waiting for in-flight pipelines...")
    await dispatcher.wait_idle()
    if repository:
        await repository.close()


app = FastAPI(lifespan=lifespan)


def get_repository() -> ProjectRepository:
    """
    Get the global repository instance.

    Raises:
        RuntimeError: If repository is not initialized
    """
    if repository is None:
        raise RuntimeError("Repository not initialized")
    return repository


def get_router() -> EventRouter:
    """
    Get the global event router.

    Raises:
        RuntimeError: If router is not initialized
    """
    if router is None:
        raise RuntimeError("Router not initialized")
    return router


def status_response(status_code: int, status: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status})


async def authorize_project(
    repo: ProjectRepository, project_id: str, token: str | None
) -> Project | JSONResponse:
    """
    Load a project and check the delivery token.

    Projects without an eventGridToken secret accept any (or no) token.

    Returns:
        The project, or the error response to send
    """
    project = await repo.get_project(project_id)
    if project is None:
        logger.debug(f"Cannot find project {project_id}")
        return status_response(404, "Resource Not Found")

    real_token = project.secrets.get(TOKEN_SECRET, "")
    if real_token and real_token != token:
        logger.debug(f"Token does not match for project {project_id}")
        return status_response(403, "Forbidden")

    return project


async def handle_eventgrid(
    request: Request,
    project_id: str,
    token: str | None,
    repo: ProjectRepository,
    rtr: EventRouter,
):
    """
    Shared Event Grid handling for both routes.

    Validation handshakes are answered before any project lookup.
    """
    body = await request.body()
    try:
        ev = eventgrid.parse_request_body(body)
    except MalformedEventError as e:
        logger.debug(f"Cannot get event from request: {e}")
        return status_response(400, "Malformed body")

    logger.debug(f"Received event: {ev.event_type} ({ev.id})")

    if ev.is_validation:
        try:
            response = ev.validation_response()
        except MalformedEventError as e:
            logger.debug(f"Bad validation event: {e}")
            return status_response(400, "Malformed body")
        logger.debug(f"Sent validation response: {response}")
        return response

    result = await authorize_project(repo, project_id, token)
    if isinstance(result, JSONResponse):
        return result

    event = Event(
        name=ev.event_type,
        payload=json.dumps(ev.to_dict()).encode(),
        provider="eventgrid",
        event_id=ev.id,
    )
    await rtr.dispatch(event, result)
    return {"message": "OK"}


@app.get("/healthz")
async def health_check() -> dict[str, str]:
    """Health check endpoint (no authentication required)."""
    return {"message": "ok"}


@app.post("/eventgrid/{project_id}")
async def eventgrid_event(
    project_id: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
    rtr: EventRouter = Depends(get_router),
):
    """
    Receive an Event Grid delivery for a project.

    Projects protected by an eventGridToken secret reject this route; use
    the tokenized one instead.
    """
    return await handle_eventgrid(request, project_id, None, repo, rtr)


@app.post("/eventgrid/{project_id}/{token}")
async def eventgrid_event_with_token(
    project_id: str,
    token: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
    rtr: EventRouter = Depends(get_router),
):
    """Receive an Event Grid delivery for a project, authenticated by token."""
    return await handle_eventgrid(request, project_id, token, repo, rtr)


@app.post("/cloudevents/v0.1/{project_id}/{token}")
async def cloudevent(
    project_id: str,
    token: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
    rtr: EventRouter = Depends(get_router),
) -> Any:
    """
    Receive a CloudEvents v0.1 event (structured or binary mode).

    Event Grid validation handshakes are not CloudEvents compliant and are
    answered Event Grid style. The decoded envelope is echoed back.
    """
    body = await request.body()

    if eventgrid.VALIDATION_EVENT.encode() in body:
        try:
            response = eventgrid.parse_request_body(body).validation_response()
        except MalformedEventError as e:
            logger.debug(f"Bad validation event: {e}")
            return status_response(400, "Malformed body")
        logger.debug(f"Sent validation response: {response}")
        return response

    try:
        envelope = cloudevents.from_request(request.headers, body)
    except MalformedEventError as e:
        logger.debug(f"Cannot decode event: {e}")
        return status_response(400, "Malformed body")

    logger.debug(f"Received event: {envelope.event_type} ({envelope.event_id})")

    result = await authorize_project(repo, project_id, token)
    if isinstance(result, JSONResponse):
        return result

    event = Event(
        name=envelope.event_type,
        payload=json.dumps(envelope.to_dict()).encode(),
        provider="cloudevents",
        event_id=envelope.event_id or None,
    )
    await rtr.dispatch(event, result)
    return envelope.to_dict()
