"""
CloudEvents v0.1 envelope decoding.

The gateway only forwards events to handlers, so the envelope preserves data
rather than parsing it into event-specific types. Events arrive either in
structured mode (the whole envelope as an application/cloudevents+json body)
or in binary mode (attributes in CE-* headers, data in the body).
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ci_common.models import CLOUDEVENTS_CONTENT_TYPE

from .eventgrid import MalformedEventError


CE_CLOUDEVENTS_VERSION = "ce-cloudeventsversion"
CE_EVENT_TYPE = "ce-eventtype"
CE_EVENT_TYPE_VERSION = "ce-eventtypeversion"
CE_EVENT_ID = "ce-eventid"
CE_SOURCE = "ce-source"
CE_EVENT_TIME = "ce-eventtime"
CE_EXTENSION_PREFIX = "ce-x-"


@dataclass
class Envelope:
    """Top-level CloudEvents object."""

    event_type: str = ""
    event_type_version: str = ""
    cloud_events_version: str = ""
    source: str = ""
    event_id: str = ""
    event_time: str = ""
    content_type: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)
    data: Any = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Envelope":
        if not isinstance(raw, dict):
            raise MalformedEventError("envelope must be a JSON object")
        return cls(
            event_type=raw.get("eventType", ""),
            event_type_version=raw.get("eventTypeVersion", ""),
            cloud_events_version=raw.get("cloudEventsVersion", ""),
            source=raw.get("source", ""),
            event_id=raw.get("eventID", ""),
            event_time=raw.get("eventTime", ""),
            content_type=raw.get("contentType", ""),
            extensions=raw.get("extensions") or {},
            data=raw.get("data"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type,
            "eventTypeVersion": self.event_type_version,
            "cloudEventsVersion": self.cloud_events_version,
            "source": self.source,
            "eventID": self.event_id,
            "eventTime": self.event_time,
            "contentType": self.content_type,
            "extensions": self.extensions,
            "data": self.data,
        }


def is_json(content_type: str) -> bool:
    """Whether a MIME type denotes JSON data (application/json, text/json, */*+json)."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in ("application/json", "text/json"):
        return True
    return media_type.endswith("+json")


def from_request(headers: Mapping[str, str], body: bytes) -> Envelope:
    """
    Decode an envelope from an HTTP request.

    Structured mode is only assumed for the exact CloudEvents content type;
    anything else is read in binary mode.

    Raises:
        MalformedEventError: If the envelope or its JSON data cannot be decoded
    """
    normalized = {key.lower(): value for key, value in headers.items()}
    if normalized.get("content-type", "") != CLOUDEVENTS_CONTENT_TYPE:
        return from_headers(normalized, body)

    try:
        return Envelope.from_dict(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"invalid JSON envelope: {e}") from e


def from_headers(headers: Mapping[str, str], body: bytes) -> Envelope:
    """
    Build an envelope from CE-* headers and the raw body (binary mode).

    Headers named CE-X-<name> become extensions keyed by lowercased <name>.
    """
    normalized = {key.lower(): value for key, value in headers.items()}
    content_type = normalized.get("content-type", "")

    envelope = Envelope(
        cloud_events_version=normalized.get(CE_CLOUDEVENTS_VERSION, ""),
        event_type=normalized.get(CE_EVENT_TYPE, ""),
        event_type_version=normalized.get(CE_EVENT_TYPE_VERSION, ""),
        event_id=normalized.get(CE_EVENT_ID, ""),
        source=normalized.get(CE_SOURCE, ""),
        event_time=normalized.get(CE_EVENT_TIME, ""),
        content_type=content_type,
    )

    for key, value in normalized.items():
        if key.startswith(CE_EXTENSION_PREFIX) and value:
            envelope.extensions[key[len(CE_EXTENSION_PREFIX) :]] = value

    if is_json(content_type):
        try:
            envelope.data = json.loads(body) if body else {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedEventError(f"invalid JSON data: {e}") from e
    else:
        envelope.data = body.decode("utf-8", errors="replace")

    return envelope
