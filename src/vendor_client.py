"""
Vendor API Client - Authenticated calls against the vendor REST API (v3).

Every call returns a typed record or raises a typed error: HTTP 404 becomes
NotFoundError, any other unexpected status or transport failure becomes
RemoteServerError. Nothing is retried here.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from config import DEFAULT_API_ORIGIN, VendorAPIConfig
from errors import CUSTOMER_NOT_FOUND_MESSAGE, NotFoundError, RemoteServerError
from models import (
    Cluster,
    CreateClusterOpts,
    CreateClusterResult,
    Customer,
    CustomerOpts,
)

logger = logging.getLogger(__name__)


def _parse_body(text: str) -> Optional[Any]:
    """Decode a JSON response body, returning None for empty or non-JSON text."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _error_message(body: Optional[Any], text: str) -> str:
    """Pull a human-readable message out of an error response."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return text


def _validation_errors(body: Optional[Any]) -> List[str]:
    """Extract cluster validation feedback from a response body."""
    if not isinstance(body, dict):
        return []

    error = body.get("error")
    if not isinstance(error, dict):
        return []

    validation = error.get("validationError") or error.get("validation_error")
    if not isinstance(validation, dict):
        return []

    errors = [str(e) for e in validation.get("errors") or []]
    if not errors and error.get("message"):
        errors = [str(error["message"])]
    return errors


class VendorAPIClient:
    """
    Client for the vendor API.

    One instance is built at startup and shared read-only by every
    reconciler; each call opens its own HTTP session.
    """

    def __init__(
        self,
        api_token: str,
        endpoint: str = DEFAULT_API_ORIGIN,
        timeout: int = 60,
    ):
        self.api_token = api_token
        self.base_url = f"{endpoint.rstrip('/')}/v3"
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: VendorAPIConfig) -> "VendorAPIClient":
        """Build a client from the vendor API configuration."""
        return cls(
            api_token=config.api_token,
            endpoint=config.endpoint,
            timeout=config.timeout,
        )

    def __repr__(self) -> str:
        return f"VendorAPIClient(base_url={self.base_url!r})"

    # ==================== Clusters ====================

    async def create_cluster(self, opts: CreateClusterOpts) -> CreateClusterResult:
        """
        Create a cluster.

        Validation feedback (HTTP 400 with a validation payload, or feedback
        attached to a created cluster) is returned instead of raised.
        """
        status, body, text = await self._request(
            "POST", "/cluster", payload=opts.to_payload()
        )

        if status == 400:
            errors = _validation_errors(body)
            if errors:
                return CreateClusterResult(validation_errors=errors)

        self._check_status(status, body, text, "create cluster", expected=(200, 201))
        cluster = self._parse_record(Cluster, body, "cluster", "create cluster")
        logger.info(f"Created cluster {cluster.id} ({cluster.kubernetes_distribution})")
        return CreateClusterResult(cluster=cluster, validation_errors=_validation_errors(body))

    async def get_cluster(self, cluster_id: str) -> Cluster:
        """Get a cluster by id."""
        status, body, text = await self._request("GET", f"/cluster/{cluster_id}")
        self._check_status(status, body, text, "get cluster")
        return self._parse_record(Cluster, body, "cluster", "get cluster")

    async def get_cluster_kubeconfig(self, cluster_id: str) -> bytes:
        """Get the kubeconfig of a running cluster."""
        status, body, text = await self._request(
            "GET", f"/cluster/{cluster_id}/kubeconfig"
        )
        self._check_status(status, body, text, "get cluster kubeconfig")

        encoded = body.get("kubeconfig") if isinstance(body, dict) else None
        if not encoded:
            raise RemoteServerError(
                f"get cluster kubeconfig: response for {cluster_id} has no kubeconfig",
                status=status,
            )
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RemoteServerError(
                f"get cluster kubeconfig: invalid kubeconfig encoding: {e}",
                status=status,
            ) from e

    async def remove_cluster(self, cluster_id: str) -> None:
        """Remove a cluster."""
        status, body, text = await self._request("DELETE", f"/cluster/{cluster_id}")
        self._check_status(status, body, text, "remove cluster", expected=(200, 204))
        logger.info(f"Removed cluster {cluster_id}")

    # ==================== Customers ====================

    async def create_customer(self, opts: CustomerOpts) -> Customer:
        """Create a customer."""
        status, body, text = await self._request(
            "POST", "/customer", payload=opts.to_payload()
        )
        self._check_status(status, body, text, "create customer", expected=(201,))
        customer = self._parse_record(Customer, body, "customer", "create customer")
        logger.info(f"Created customer {customer.id} for app {opts.app_id}")
        return customer

    async def get_customer(self, app_id: str, customer_id: str) -> Customer:
        """
        Get a customer by app and customer id.

        Raises:
            NotFoundError: With the message "Customer not found" on HTTP 404.
        """
        status, body, text = await self._request(
            "GET", f"/app/{app_id}/customer/{customer_id}"
        )
        if status == 404:
            raise NotFoundError(CUSTOMER_NOT_FOUND_MESSAGE)
        self._check_status(status, body, text, "get customer")
        return self._parse_record(Customer, body, "customer", "get customer")

    async def update_customer(self, customer_id: str, opts: CustomerOpts) -> Customer:
        """Replace every field of a customer."""
        status, body, text = await self._request(
            "PUT", f"/customer/{customer_id}", payload=opts.to_payload()
        )
        self._check_status(status, body, text, "update customer")
        customer = self._parse_record(Customer, body, "customer", "update customer")
        logger.info(f"Updated customer {customer_id}")
        return customer

    async def archive_customer(self, customer_id: str) -> None:
        """Archive (soft-delete) a customer."""
        status, body, text = await self._request(
            "POST", f"/customer/{customer_id}/archive"
        )
        self._check_status(status, body, text, "archive customer", expected=(200, 204))
        logger.info(f"Archived customer {customer_id}")

    # Private helper methods

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for vendor API requests."""
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": self.api_token,
        }

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Optional[Any], str]:
        """Send a request and return (status, decoded body, raw text)."""
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        logger.debug(f"{method} {url}")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=self._get_headers(), json=payload
                ) as response:
                    text = await response.text()
                    return response.status, _parse_body(text), text
        except asyncio.TimeoutError as e:
            raise RemoteServerError(
                f"{method} {path} timed out after {self.timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise RemoteServerError(f"{method} {path} failed: {e}") from e

    def _check_status(
        self,
        status: int,
        body: Optional[Any],
        text: str,
        action: str,
        expected: Tuple[int, ...] = (200,),
    ) -> None:
        """Raise the typed error for an unexpected status code."""
        if status in expected:
            return
        message = _error_message(body, text)
        if status == 404:
            raise NotFoundError(f"{action}: not found: {message}")
        raise RemoteServerError(
            f"{action} failed with status code: {status}, {message}", status=status
        )

    def _parse_record(self, model: Any, body: Optional[Any], key: str, action: str):
        """Validate the wrapped record (``{key: {...}}``) in a response body."""
        if not isinstance(body, dict) or not isinstance(body.get(key), dict):
            raise RemoteServerError(f"{action}: response has no '{key}' object")
        try:
            return model.model_validate(body[key])
        except ValueError as e:
            raise RemoteServerError(f"{action}: invalid '{key}' object: {e}") from e
