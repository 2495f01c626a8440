"""
Morpheus API Client - Thin async wrapper over the Morpheus REST API.

Every call is a single authenticated HTTP request. The client never retries;
failures surface as APIError carrying the HTTP status code (None for
transport errors).
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from config import MorpheusConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when the Morpheus API returns a non-success response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body or {}

    @property
    def not_found(self) -> bool:
        """Whether the remote side reported the entity as missing."""
        return self.status_code == 404

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


@dataclass
class APIResponse:
    """A successful API response."""

    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FilePayload:
    """A file sent as one part of a multipart upload."""

    parameter_name: str
    file_name: str
    content: bytes = field(repr=False)


def _decode_body(text: str) -> Dict[str, Any]:
    """Decode a JSON response body, tolerating empty and non-object bodies."""
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return {"msg": text}
    if isinstance(decoded, dict):
        return decoded
    return {"data": decoded}


def _error_message(body: Dict[str, Any], default: str) -> str:
    """Pull the most useful error description out of a Morpheus error body."""
    message = body.get("msg") or body.get("message") or body.get("error")
    if not message:
        return default
    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        details = ", ".join(f"{k}: {v}" for k, v in sorted(errors.items()))
        return f"{message} ({details})"
    return str(message)


class MorpheusClient:
    """
    Async client for the Morpheus appliance API.

    Authenticates with a bearer access token. When only a username and
    password are configured, a token is requested from the OAuth endpoint
    before the first API call.
    """

    def __init__(
        self,
        url: str,
        access_token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "morph-api",
        verify_ssl: bool = True,
        timeout: int = 30,
    ):
        self.url = url.rstrip("/")
        self.access_token = access_token or None
        self.username = username
        self.password = password
        self.client_id = client_id
        self.verify_ssl = verify_ssl
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: MorpheusConfig) -> "MorpheusClient":
        """Build a client from connection configuration."""
        return cls(
            url=cfg.url,
            access_token=cfg.access_token,
            username=cfg.username,
            password=cfg.password,
            client_id=cfg.client_id,
            verify_ssl=not cfg.insecure,
            timeout=cfg.timeout,
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for Morpheus API requests."""
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _ssl(self) -> bool:
        # False disables certificate verification for self-signed appliances
        return self.verify_ssl

    async def login(self) -> str:
        """
        Request an access token using the configured username and password.

        Returns:
            The access token.

        Raises:
            APIError: If credentials are missing or the token request fails.
        """
        if not (self.username and self.password):
            raise APIError("No access token or username/password configured")

        url = f"{self.url}/oauth/token"
        params = {
            "grant_type": "password",
            "scope": "write",
            "client_id": self.client_id,
        }
        form = {"username": self.username, "password": self.password}

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(
                    url, params=params, data=form, ssl=self._ssl()
                ) as response:
                    body = _decode_body(await response.text())
                    if response.status != 200:
                        raise APIError(
                            _error_message(body, "Authentication failed"),
                            status_code=response.status,
                            body=body,
                        )
        except aiohttp.ClientError as e:
            raise APIError(f"Authentication request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise APIError(
                f"Authentication request timed out after {self.timeout}s"
            ) from e

        token = body.get("access_token")
        if not token:
            raise APIError("Authentication response did not contain a token")
        self.access_token = token
        logger.info(f"Authenticated to {self.url} as {self.username}")
        return token

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[aiohttp.FormData] = None,
    ) -> APIResponse:
        """
        Issue a single API request.

        Args:
            method: HTTP method.
            path: API path, e.g. '/api/integrations/12'.
            json: Optional JSON request body.
            params: Optional query parameters.
            data: Optional multipart form data.

        Returns:
            APIResponse for any 2xx status.

        Raises:
            APIError: For non-2xx responses and transport failures.
        """
        if not self.access_token:
            await self.login()

        url = f"{self.url}{path}"
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    json=json,
                    params=params,
                    data=data,
                    ssl=self._ssl(),
                ) as response:
                    body = _decode_body(await response.text())
                    status = response.status
        except aiohttp.ClientError as e:
            logger.error(f"API FAILURE: {method} {path} - {e}")
            raise APIError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"API FAILURE: {method} {path} - timed out")
            raise APIError(
                f"{method} {path} timed out after {self.timeout}s"
            ) from e

        if 200 <= status < 300:
            logger.debug(f"API RESPONSE: {method} {path} {status} - {body}")
            return APIResponse(status_code=status, body=body)

        message = _error_message(body, f"{method} {path} returned {status}")
        if status == 404:
            logger.warning(f"API 404: {method} {path} - {message}")
        else:
            logger.error(f"API FAILURE: {method} {path} {status} - {message}")
        raise APIError(message, status_code=status, body=body)

    async def get(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Dict[str, Any]) -> APIResponse:
        return await self.request("POST", path, json=body)

    async def put(self, path: str, body: Dict[str, Any]) -> APIResponse:
        return await self.request("PUT", path, json=body)

    async def delete(self, path: str) -> APIResponse:
        return await self.request("DELETE", path)

    async def upload_files(self, path: str, files: List[FilePayload]) -> APIResponse:
        """
        Upload file content as multipart form data.

        Args:
            path: API path of the upload endpoint.
            files: Files to send, one form part each.

        Returns:
            APIResponse from the upload endpoint.
        """
        form = aiohttp.FormData()
        for payload in files:
            form.add_field(
                payload.parameter_name,
                payload.content,
                filename=payload.file_name,
                content_type="application/octet-stream",
            )
        return await self.request("POST", path, data=form)
