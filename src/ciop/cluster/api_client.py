# cluster/api_client.py
from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .kubeconfig import ClusterConfig


class ClusterAPIError(Exception):
    """Raised when a control plane request fails."""

    def __init__(self, message: str, status: int = 0, reason: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason


class AlreadyExists(ClusterAPIError):
    """The object being created is already present."""


class NotFound(ClusterAPIError):
    """The object does not exist."""


# kind -> (api prefix, resource plural, namespaced)
KINDS: Dict[str, tuple[str, str, bool]] = {
    "projectrequest": ("/apis/project.openshift.io/v1", "projectrequests", False),
    "project": ("/apis/project.openshift.io/v1", "projects", False),
    "imagestream": ("/apis/image.openshift.io/v1", "imagestreams", True),
    "route": ("/apis/route.openshift.io/v1", "routes", True),
    "rolebinding": ("/apis/rbac.authorization.k8s.io/v1", "rolebindings", True),
    "serviceaccount": ("/api/v1", "serviceaccounts", True),
    "service": ("/api/v1", "services", True),
    "pod": ("/api/v1", "pods", True),
    "build": ("/apis/build.openshift.io/v1", "builds", True),
}


def resource_path(kind: str, namespace: Optional[str] = None, name: Optional[str] = None) -> str:
    """Build the REST path for a kind, optionally scoped to a namespace and object."""
    try:
        prefix, plural, namespaced = KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown kind: {kind!r}. Known kinds: {sorted(KINDS)}") from None

    if namespaced and not namespace:
        raise ValueError(f"Kind {kind!r} is namespaced, a namespace is required")

    path = prefix
    if namespaced:
        path += f"/namespaces/{quote(namespace, safe='')}"
    path += f"/{plural}"
    if name:
        path += f"/{quote(name, safe='')}"
    return path


def _error_from_response(code: int, reason: str, body: str) -> ClusterAPIError:
    status_reason = ""
    message = body
    try:
        status = json.loads(body) if body else {}
        status_reason = status.get("reason", "")
        message = status.get("message", body)
    except (ValueError, AttributeError):
        pass

    text = f"API request failed: {code} {reason}. {message}".strip()
    if code == 404:
        return NotFound(text, status=code, reason=status_reason or "NotFound")
    if code == 409 and status_reason in ("AlreadyExists", ""):
        return AlreadyExists(text, status=code, reason="AlreadyExists")
    return ClusterAPIError(text, status=code, reason=status_reason)


class ClusterClient:
    """HTTP client for the cluster control plane (Kubernetes + OpenShift APIs)."""

    def __init__(self, config: ClusterConfig, timeout: float = 30.0):
        """
        Initialize cluster client.

        Args:
            config: Connection settings (server URL, credentials, CA)
            timeout: Per-request socket timeout in seconds
        """
        self.config = config
        self.base_url = config.server.rstrip("/")
        self.timeout = timeout
        self._ssl_context = config.ssl_context()

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
    ) -> dict:
        """
        Make an HTTP request to the API server.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: API path (e.g., "/api/v1/namespaces/x/pods")
            data: Optional JSON data to send in request body

        Returns:
            Parsed JSON response as dictionary

        Raises:
            AlreadyExists: on 409 AlreadyExists
            NotFound: on 404
            ClusterAPIError: on any other failure
        """
        url = self.base_url + path

        req_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.token:
            req_headers["Authorization"] = f"Bearer {self.config.token}"

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(url, data=req_data, headers=req_headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.timeout, context=self._ssl_context) as response:
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise _error_from_response(e.code, e.reason, error_body) from e
        except urllib.error.URLError as e:
            raise ClusterAPIError(f"Network error: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise ClusterAPIError(f"Invalid JSON response: {e}") from e

    def create(self, kind: str, body: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", resource_path(kind, namespace), data=body)

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        return self._request("GET", resource_path(kind, namespace, name))

    def list(self, kind: str, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        return list(self._request("GET", resource_path(kind, namespace)).get("items") or [])

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        self._request("DELETE", resource_path(kind, namespace, name))
