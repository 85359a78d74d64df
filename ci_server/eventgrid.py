"""
Azure Event Grid event schema.

Event Grid delivers events to webhooks as a JSON array; in practice the array
holds a single event. Every event carries five required string properties and
a publisher-specific data object.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from ci_common.models import VALIDATION_EVENT


class MalformedEventError(ValueError):
    """The request body could not be decoded into an event."""


@dataclass
class EventGridEvent:
    """A single Event Grid event."""

    id: str
    event_type: str
    subject: str = ""
    topic: str = ""
    event_time: str = ""
    data: Any = field(default_factory=dict)
    data_version: str = ""
    metadata_version: str = ""

    @property
    def is_validation(self) -> bool:
        return self.event_type == VALIDATION_EVENT

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "EventGridEvent":
        """Create an event from its wire format."""
        if not isinstance(raw, dict):
            raise MalformedEventError("event must be a JSON object")
        try:
            return cls(
                id=raw["id"],
                event_type=raw["eventType"],
                subject=raw.get("subject", ""),
                topic=raw.get("topic", ""),
                event_time=raw.get("eventTime", ""),
                data=raw.get("data", {}),
                data_version=raw.get("dataVersion", ""),
                metadata_version=raw.get("metadataVersion", ""),
            )
        except KeyError as e:
            raise MalformedEventError(f"missing required field {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert the event back to its wire format."""
        return {
            "id": self.id,
            "topic": self.topic,
            "subject": self.subject,
            "data": self.data,
            "eventType": self.event_type,
            "eventTime": self.event_time,
            "metadataVersion": self.metadata_version,
            "dataVersion": self.data_version,
        }

    def validation_response(self) -> dict[str, Any]:
        """
        Answer to a subscription validation handshake.

        Raises:
            MalformedEventError: If the event carries no validation code
        """
        if not isinstance(self.data, dict) or "validationCode" not in self.data:
            raise MalformedEventError("validation event without validationCode")
        return {"validationResponse": self.data["validationCode"]}


def parse_events(body: bytes) -> list[EventGridEvent]:
    """
    Decode a webhook request body into events.

    Raises:
        MalformedEventError: If the body is not a JSON array of events
    """
    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"invalid JSON: {e}") from e

    if not isinstance(raw, list):
        raise MalformedEventError("expected a JSON array of events")
    return [EventGridEvent.from_dict(item) for item in raw]


def parse_request_body(body: bytes) -> EventGridEvent:
    """Decode a webhook request body and return its only event."""
    events = parse_events(body)
    if not events:
        raise MalformedEventError("empty event array")
    return events[0]
