"""
Unit tests for ci_server.eventgrid and ci_server.cloudevents decoding.
"""

import json

import pytest

from ci_common.models import VALIDATION_EVENT
from ci_server import cloudevents
from ci_server.eventgrid import (
    EventGridEvent,
    MalformedEventError,
    parse_events,
    parse_request_body,
)

BLOB_CREATED = {
    "topic": "/subscriptions/id/resourceGroups/Storage/providers/Microsoft.Storage/storageAccounts/xstoretestaccount",
    "subject": "/blobServices/default/containers/oc2d2817345i200097container/blobs/oc2d2817345i20002296blob",
    "eventType": "Microsoft.Storage.BlobCreated",
    "eventTime": "2017-06-26T18:41:00.9584103Z",
    "id": "831e1650-001e-001b-66ab-eeb76e069631",
    "data": {
        "api": "PutBlockList",
        "contentType": "application/octet-stream",
        "blobType": "BlockBlob",
        "url": "https://example.blob.core.windows.net/oc2d2817345i200097container/oc2d2817345i20002296blob",
    },
    "dataVersion": "",
    "metadataVersion": "1",
}


class TestEventGrid:
    """Test suite for Event Grid decoding."""

    def test_parse_request_body_returns_first_event(self):
        """Test that the first event of a batch is decoded."""
        body = json.dumps([BLOB_CREATED]).encode()

        event = parse_request_body(body)

        assert event.event_type == "Microsoft.Storage.BlobCreated"
        assert event.subject == BLOB_CREATED["subject"]
        assert not event.is_validation

    def test_round_trip_preserves_wire_fields(self):
        """Test that to_dict() reproduces the wire fields."""
        event = EventGridEvent.from_dict(BLOB_CREATED)

        assert event.to_dict() == BLOB_CREATED

    @pytest.mark.parametrize(
        "body",
        [b"not json", b"{}", b"[]", b'[{"eventType": "x"}]', b"[1]"],
    )
    def test_malformed_bodies(self, body):
        """Test that undecodable or empty batches raise MalformedEventError."""
        with pytest.raises(MalformedEventError):
            parse_request_body(body)

    def test_parse_events_accepts_several(self):
        """Test that every event of a batch is decoded in order."""
        second = dict(BLOB_CREATED, id="2")

        events = parse_events(json.dumps([BLOB_CREATED, second]).encode())

        assert [e.id for e in events] == [BLOB_CREATED["id"], "2"]

    def test_validation_response(self):
        """Test that the validation code is echoed as validationResponse."""
        event = EventGridEvent(
            id="1",
            event_type=VALIDATION_EVENT,
            data={"validationCode": "512d38b6-c7b8-40c8-89fe-f46f9e9622b6"},
        )

        assert event.is_validation
        assert event.validation_response() == {
            "validationResponse": "512d38b6-c7b8-40c8-89fe-f46f9e9622b6"
        }

    def test_validation_without_code(self):
        """Test that a validation event without a code is malformed."""
        event = EventGridEvent(id="1", event_type=VALIDATION_EVENT, data="oops")

        with pytest.raises(MalformedEventError):
            event.validation_response()


class TestCloudEvents:
    """Test suite for CloudEvents v0.1 envelope decoding."""

    def test_structured_mode(self):
        """Test that a structured-mode envelope is decoded as is."""
        envelope = {
            "eventType": "com.example.someevent",
            "eventTypeVersion": "1.0",
            "cloudEventsVersion": "0.1",
            "source": "/mycontext",
            "eventID": "A234-1234-1234",
            "eventTime": "2018-04-05T17:31:00Z",
            "contentType": "application/json",
            "extensions": {"comExampleExtension": "value"},
            "data": {"appinfoA": "abc"},
        }

        decoded = cloudevents.from_request(
            {"Content-Type": cloudevents.CLOUDEVENTS_CONTENT_TYPE},
            json.dumps(envelope).encode(),
        )

        assert decoded.to_dict() == envelope

    def test_binary_mode_with_json_data(self):
        """Test that CE- headers and a JSON body form the event."""
        headers = {
            "CE-CloudEventsVersion": "0.1",
            "CE-EventType": "com.example.someevent",
            "CE-EventTypeVersion": "1.0",
            "CE-EventID": "1234-1234-1234",
            "CE-Source": "/mycontext/subcontext",
            "CE-EventTime": "2018-04-05T03:56:24Z",
            "CE-X-Foo": "bar",
            "Content-Type": "application/json; charset=utf-8",
        }

        decoded = cloudevents.from_request(headers, b'{"key": "value"}')

        assert decoded.event_type == "com.example.someevent"
        assert decoded.event_id == "1234-1234-1234"
        assert decoded.source == "/mycontext/subcontext"
        assert decoded.extensions == {"foo": "bar"}
        assert decoded.data == {"key": "value"}

    def test_binary_mode_with_text_data(self):
        """Test that a non-JSON body is kept as text."""
        decoded = cloudevents.from_request(
            {"ce-eventtype": "text.event", "content-type": "text/plain"}, b"hello"
        )

        assert decoded.data == "hello"
        assert decoded.content_type == "text/plain"

    def test_binary_mode_with_invalid_json(self):
        """Test that a broken JSON body in binary mode is malformed."""
        with pytest.raises(MalformedEventError):
            cloudevents.from_request({"Content-Type": "application/json"}, b"{nope")

    def test_structured_mode_with_invalid_json(self):
        """Test that a broken structured-mode envelope is malformed."""
        with pytest.raises(MalformedEventError):
            cloudevents.from_request(
                {"Content-Type": cloudevents.CLOUDEVENTS_CONTENT_TYPE}, b"{nope"
            )

    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("application/json", True),
            ("TEXT/JSON", True),
            ("application/cloudevents+json", True),
            ("application/json; charset=utf-8", True),
            ("text/plain", False),
            ("", False),
        ],
    )
    def test_is_json(self, content_type, expected):
        """Test JSON content-type detection."""
        assert cloudevents.is_json(content_type) is expected
