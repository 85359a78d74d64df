import json
import uuid
from datetime import UTC, datetime
from typing import Any

import requests

from ci_common.models import CLOUDEVENTS_CONTENT_TYPE, VALIDATION_EVENT


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def build_eventgrid_event(
    event_type: str, data: Any, subject: str = "", topic: str = ""
) -> dict[str, Any]:
    """Build a single Event Grid event in wire format."""
    return {
        "id": str(uuid.uuid4()),
        "topic": topic,
        "subject": subject,
        "data": data,
        "eventType": event_type,
        "eventTime": _now(),
        "metadataVersion": "1",
        "dataVersion": "1.0",
    }


def eventgrid_url(server_url: str, project_id: str, token: str | None = None) -> str:
    url = f"{server_url}/eventgrid/{project_id}"
    return f"{url}/{token}" if token else url


def send_eventgrid_event(
    project_id: str,
    event_type: str,
    data: Any,
    subject: str = "",
    token: str | None = None,
    server_url: str = "http://localhost:8080",
) -> dict[str, Any]:
    """
    Deliver one event to the gateway the way Event Grid does (a one-item array).

    Args:
        project_id: Project the event is for
        event_type: Event Grid event type, e.g. "Microsoft.Storage.BlobCreated"
        data: Publisher-specific data object
        subject: Publisher-defined path to the event subject
        token: Project delivery token, if the project has one
        server_url: Base URL of the gateway

    Returns:
        The gateway's JSON response

    Raises:
        RuntimeError: If delivery fails due to network or server error
    """
    try:
        response = requests.post(
            eventgrid_url(server_url, project_id, token),
            json=[build_eventgrid_event(event_type, data, subject=subject)],
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error sending event to gateway: {e}")


def validate_endpoint(
    project_id: str,
    validation_code: str,
    token: str | None = None,
    server_url: str = "http://localhost:8080",
) -> str:
    """
    Perform an Event Grid subscription validation handshake.

    Returns:
        The validation code echoed back by the gateway

    Raises:
        RuntimeError: If the handshake fails or the code is not echoed back
    """
    result = send_eventgrid_event(
        project_id,
        VALIDATION_EVENT,
        {"validationCode": validation_code},
        token=token,
        server_url=server_url,
    )
    if result.get("validationResponse") != validation_code:
        raise RuntimeError(f"Unexpected validation response: {result}")
    return result["validationResponse"]


def send_cloudevent(
    project_id: str,
    token: str,
    event_type: str,
    data: Any,
    source: str = "ci-events-client",
    server_url: str = "http://localhost:8080",
) -> dict[str, Any]:
    """
    Deliver a CloudEvents v0.1 event in structured mode.

    Returns:
        The envelope as decoded by the gateway

    Raises:
        RuntimeError: If delivery fails due to network or server error
    """
    envelope = {
        "eventType": event_type,
        "eventTypeVersion": "1.0",
        "cloudEventsVersion": "0.1",
        "source": source,
        "eventID": str(uuid.uuid4()),
        "eventTime": _now(),
        "contentType": "application/json",
        "extensions": {},
        "data": data,
    }
    try:
        response = requests.post(
            f"{server_url}/cloudevents/v0.1/{project_id}/{token}",
            data=json.dumps(envelope),
            headers={"Content-Type": CLOUDEVENTS_CONTENT_TYPE},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error sending event to gateway: {e}")


def check_health(server_url: str = "http://localhost:8080") -> bool:
    """Return True if the gateway answers its health check."""
    try:
        response = requests.get(f"{server_url}/healthz", timeout=5)
        return response.status_code == 200 and response.json().get("message") == "ok"
    except requests.exceptions.RequestException:
        return False
