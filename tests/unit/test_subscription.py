"""
Unit tests for ci_admin.subscription.

Azure endpoints are mocked at requests.post / requests.put / requests.get.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from ci_admin.subscription import (
    API_VERSION,
    AzureCredentials,
    create_event_subscription,
    get_access_token,
    storage_account_scope,
)

CREDENTIALS = AzureCredentials(
    subscription_id="sub-1",
    tenant_id="tenant-1",
    client_id="client-1",
    client_secret="secret-1",
)

SUBSCRIPTION_URL = (
    "https://rm.example/subscriptions/sub-1/resourceGroups/ci-rg"
    "/providers/microsoft.storage/storageAccounts/cistorage"
    "/providers/Microsoft.EventGrid/eventSubscriptions/ci-sub"
)


def json_response(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status = Mock()
    return response


def subscription(state: str) -> dict:
    return {"id": "/x/ci-sub", "properties": {"provisioningState": state}}


def create(**kwargs):
    return create_event_subscription(
        CREDENTIALS,
        "ci-rg",
        "cistorage",
        "ci-sub",
        "https://gw/eventgrid/app/tok",
        resource_manager_url="https://rm.example",
        poll_interval=0,
        **kwargs,
    )


class TestCredentials:
    """Test suite for AzureCredentials.from_env."""

    def test_from_env(self, monkeypatch):
        """Test that all four AZ_* variables are read."""
        monkeypatch.setenv("AZ_SUBSCRIPTION_ID", "sub-1")
        monkeypatch.setenv("AZ_TENANT_ID", "tenant-1")
        monkeypatch.setenv("AZ_CLIENT_ID", "client-1")
        monkeypatch.setenv("AZ_CLIENT_SECRET", "secret-1")

        assert AzureCredentials.from_env() == CREDENTIALS

    def test_missing_variables_are_named(self, monkeypatch):
        """Test that every missing variable is listed in the error."""
        for name in ("AZ_SUBSCRIPTION_ID", "AZ_TENANT_ID", "AZ_CLIENT_ID"):
            monkeypatch.setenv(name, "x")
        monkeypatch.delenv("AZ_CLIENT_SECRET", raising=False)

        with pytest.raises(ValueError, match="AZ_CLIENT_SECRET"):
            AzureCredentials.from_env()


def test_storage_account_scope():
    """Test the Resource Manager scope of a storage account."""
    assert storage_account_scope("s", "rg", "acct") == (
        "/subscriptions/s/resourceGroups/rg"
        "/providers/microsoft.storage/storageAccounts/acct"
    )


class TestAccessToken:
    """Test suite for the client credentials token request."""

    @patch("ci_admin.subscription.requests.post")
    def test_token_request(self, mock_post):
        """Test that the service principal is exchanged for a bearer token."""
        mock_post.return_value = json_response({"access_token": "tok-1"})

        token = get_access_token(CREDENTIALS, resource="https://rm.example")

        assert token == "tok-1"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://login.microsoftonline.com/tenant-1/oauth2/token"
        assert kwargs["data"] == {
            "grant_type": "client_credentials",
            "client_id": "client-1",
            "client_secret": "secret-1",
            "resource": "https://rm.example/",
        }

    @patch("ci_admin.subscription.requests.post")
    def test_token_request_failure(self, mock_post):
        """Test that an authentication failure becomes RuntimeError."""
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RuntimeError, match="Cannot get access token"):
            get_access_token(CREDENTIALS)


@patch("ci_admin.subscription.requests.get")
@patch("ci_admin.subscription.requests.put")
@patch("ci_admin.subscription.requests.post")
class TestCreateEventSubscription:
    """Test suite for create_event_subscription."""

    def test_puts_webhook_destination(self, mock_post, mock_put, mock_get):
        """Test that the subscription is PUT with a WebHook destination."""
        mock_post.return_value = json_response({"access_token": "tok-1"})
        mock_put.return_value = json_response(subscription("Succeeded"))

        resource = create()

        assert resource == subscription("Succeeded")
        args, kwargs = mock_put.call_args
        assert args[0] == SUBSCRIPTION_URL
        assert kwargs["params"] == {"api-version": API_VERSION}
        assert kwargs["headers"] == {"Authorization": "Bearer tok-1"}
        assert kwargs["json"]["properties"]["destination"] == {
            "endpointType": "WebHook",
            "properties": {"endpointUrl": "https://gw/eventgrid/app/tok"},
        }
        mock_get.assert_not_called()

    def test_polls_until_terminal_state(self, mock_post, mock_put, mock_get):
        """Test that provisioning is polled until Azure reports Succeeded."""
        mock_post.return_value = json_response({"access_token": "tok-1"})
        mock_put.return_value = json_response(subscription("Creating"))
        mock_get.side_effect = [
            json_response(subscription("AwaitingManualAction")),
            json_response(subscription("Succeeded")),
        ]

        resource = create()

        assert resource["properties"]["provisioningState"] == "Succeeded"
        assert mock_get.call_count == 2
        assert mock_get.call_args[0][0] == SUBSCRIPTION_URL

    def test_failed_provisioning(self, mock_post, mock_put, mock_get):
        """Test that a Failed provisioning state raises RuntimeError."""
        mock_post.return_value = json_response({"access_token": "tok-1"})
        mock_put.return_value = json_response(subscription("Creating"))
        mock_get.return_value = json_response(subscription("Failed"))

        with pytest.raises(RuntimeError, match="provisioning failed"):
            create()

    def test_timeout(self, mock_post, mock_put, mock_get):
        """Test that a subscription stuck in provisioning times out."""
        mock_post.return_value = json_response({"access_token": "tok-1"})
        mock_put.return_value = json_response(subscription("Creating"))
        mock_get.return_value = json_response(subscription("Creating"))

        with pytest.raises(RuntimeError, match="Timed out"):
            create(timeout=-1)

    def test_request_failure(self, mock_post, mock_put, mock_get):
        """Test that a rejected PUT becomes RuntimeError."""
        mock_post.return_value = json_response({"access_token": "tok-1"})
        response = json_response({})
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("400")
        mock_put.return_value = response

        with pytest.raises(RuntimeError, match="Cannot create event subscription"):
            create()
