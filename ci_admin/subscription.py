"""
Event Grid subscriptions pointing a storage account at the gateway.

Talks to the Azure Resource Manager REST API with a service principal
(client credentials grant).

Environment variables:
    AZ_SUBSCRIPTION_ID, AZ_TENANT_ID, AZ_CLIENT_ID, AZ_CLIENT_SECRET
"""

import os
import time
from dataclasses import dataclass
from typing import Any

import requests

AUTHORITY_URL = "https://login.microsoftonline.com"
RESOURCE_MANAGER_URL = "https://management.azure.com"
API_VERSION = "2018-01-01"

TERMINAL_STATES = ("Succeeded", "Failed", "Canceled")


@dataclass(frozen=True)
class AzureCredentials:
    """Service principal used to manage event subscriptions."""

    subscription_id: str
    tenant_id: str
    client_id: str
    client_secret: str

    @classmethod
    def from_env(cls) -> "AzureCredentials":
        """
        Read credentials from AZ_* environment variables.

        Raises:
            ValueError: If any of them is missing
        """
        names = {
            "subscription_id": "AZ_SUBSCRIPTION_ID",
            "tenant_id": "AZ_TENANT_ID",
            "client_id": "AZ_CLIENT_ID",
            "client_secret": "AZ_CLIENT_SECRET",
        }
        missing = [env for env in names.values() if not os.environ.get(env)]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")
        return cls(**{field: os.environ[env] for field, env in names.items()})


def storage_account_scope(
    subscription_id: str, resource_group: str, storage_account: str
) -> str:
    return (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/microsoft.storage/storageAccounts/{storage_account}"
    )


def get_access_token(
    credentials: AzureCredentials,
    authority_url: str = AUTHORITY_URL,
    resource: str = RESOURCE_MANAGER_URL,
) -> str:
    """
    Obtain a Resource Manager bearer token for the service principal.

    Raises:
        RuntimeError: If the token request fails
    """
    try:
        response = requests.post(
            f"{authority_url}/{credentials.tenant_id}/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
                "resource": f"{resource}/",
            },
            timeout=30,
        )
        response.raise_for_status()
        return response.json()["access_token"]
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Cannot get access token: {e}")


def create_event_subscription(
    credentials: AzureCredentials,
    resource_group: str,
    storage_account: str,
    name: str,
    webhook_url: str,
    resource_manager_url: str = RESOURCE_MANAGER_URL,
    poll_interval: float = 5.0,
    timeout: float = 300.0,
) -> dict[str, Any]:
    """
    Create or update a webhook event subscription on a storage account.

    Waits until Azure reports a terminal provisioning state. Event Grid
    validates the webhook while provisioning, so the gateway must be
    reachable at webhook_url.

    Returns:
        The event subscription resource

    Raises:
        RuntimeError: If the request fails, provisioning fails or times out
    """
    token = get_access_token(credentials, resource=resource_manager_url)
    scope = storage_account_scope(
        credentials.subscription_id, resource_group, storage_account
    )
    url = (
        f"{resource_manager_url}{scope}"
        f"/providers/Microsoft.EventGrid/eventSubscriptions/{name}"
    )
    headers = {"Authorization": f"Bearer {token}"}
    params = {"api-version": API_VERSION}
    body = {
        "properties": {
            "destination": {
                "endpointType": "WebHook",
                "properties": {"endpointUrl": webhook_url},
            }
        }
    }

    try:
        response = requests.put(
            url, params=params, json=body, headers=headers, timeout=30
        )
        response.raise_for_status()
        resource = response.json()

        deadline = time.monotonic() + timeout
        while resource.get("properties", {}).get("provisioningState") not in (
            TERMINAL_STATES
        ):
            if time.monotonic() > deadline:
                raise RuntimeError(f"Timed out waiting for subscription {name}")
            time.sleep(poll_interval)
            response = requests.get(url, params=params, headers=headers, timeout=30)
            response.raise_for_status()
            resource = response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Cannot create event subscription: {e}")

    state = resource["properties"]["provisioningState"]
    if state != "Succeeded":
        raise RuntimeError(f"Event subscription {name} provisioning {state.lower()}")
    return resource
