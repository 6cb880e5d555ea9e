"""
Heroku Platform API client.

Thin async wrapper over httpx that speaks the v3 API and the Postgres data
API, plus the payload models pg-extras reads from them.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..core.errors import PlatformAPIError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.heroku+json; version=3"


class AppRef(BaseModel):
    id: Optional[str] = None
    name: str


class PlanRef(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class AddonRef(BaseModel):
    id: str
    name: str
    app: Optional[AppRef] = None


class AddonAttachmentModel(BaseModel):
    id: Optional[str] = None
    name: str
    app: AppRef
    addon: AddonRef


class AddonModel(BaseModel):
    id: str
    name: str
    plan: Optional[PlanRef] = None
    config_vars: List[str] = Field(default_factory=list)


class StatsResetResponse(BaseModel):
    message: str = ""


class AutovacuumModel(BaseModel):
    pid: int
    database: Optional[str] = None
    username: Optional[str] = None
    query: str = ""


class PlatformClient:
    """
    Client for the Heroku Platform API.

    Requests go to the configured API URL unless a host is given, in which
    case they are sent over HTTPS to that host (used for the data API).
    """

    def __init__(self, api_url: str = "https://api.heroku.com",
                 api_token: Optional[str] = None, timeout: int = 30,
                 client: Optional[httpx.AsyncClient] = None):
        self.api_url = api_url.rstrip("/")
        headers = {"Accept": ACCEPT_HEADER, "User-Agent": "pg-extras"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = headers

    def _url(self, path: str, host: Optional[str]) -> str:
        if host:
            base = host if host.startswith("http") else f"https://{host}"
            return f"{base.rstrip('/')}{path}"
        return f"{self.api_url}{path}"

    async def request(self, method: str, path: str, host: Optional[str] = None,
                      json: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a request and decode the JSON body.

        Args:
            method: HTTP method
            path: Request path beginning with /
            host: Optional host overriding the API URL
            json: Optional JSON body

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            PlatformAPIError: On transport failure or a non-success status
        """
        url = self._url(path, host)
        logger.debug(f"{method} {url}")

        try:
            response = await self.client.request(method, url, json=json, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error(f"Platform API request failed: {method} {url}: {e}")
            raise PlatformAPIError(f"Unable to reach {url}: {e}") from e

        if response.is_error:
            message, error_id = self._error_details(response)
            logger.error(f"Platform API returned {response.status_code} for {method} {url}")
            raise PlatformAPIError(message, status_code=response.status_code, error_id=error_id)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_details(response: httpx.Response):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return body["message"], body.get("id")
        return f"HTTP Error {response.status_code} for {response.request.method} {response.request.url}", None

    async def get(self, path: str, host: Optional[str] = None) -> Any:
        return await self.request("GET", path, host=host)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None,
                   host: Optional[str] = None) -> Any:
        return await self.request("POST", path, host=host, json=json)

    async def put(self, path: str, json: Optional[Dict[str, Any]] = None,
                  host: Optional[str] = None) -> Any:
        return await self.request("PUT", path, host=host, json=json)

    async def delete(self, path: str, host: Optional[str] = None) -> Any:
        return await self.request("DELETE", path, host=host)

    async def aclose(self) -> None:
        await self.client.aclose()
