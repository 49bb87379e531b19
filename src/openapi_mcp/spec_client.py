"""HTTP client for OpenAPI documents and the APIs they describe.

Copyright (C) 2024 OpenAPI MCP

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
import yaml

from .config import EnvironmentConfig, EnvironmentRegistry
from .operations import Operation, extract_operations

logger = logging.getLogger(__name__)


class SpecFetchError(Exception):
    """Raised when an OpenAPI document cannot be fetched or parsed."""


class APICallError(Exception):
    """Raised when an API call cannot be completed."""


def _expand_server_url(server: Dict[str, Any]) -> str:
    """Substitute server variables with their default values."""
    url = server["url"]
    for name, variable in (server.get("variables") or {}).items():
        if isinstance(variable, dict) and "default" in variable:
            url = url.replace("{" + name + "}", str(variable["default"]))
    return url


class OpenAPISpecClient:
    """Fetches and caches OpenAPI documents and calls the described APIs.

    One httpx.Client is kept per environment so that TLS verification,
    timeouts and credentials stay scoped to that environment.
    """

    def __init__(self, registry: EnvironmentRegistry, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the client.

        Args:
            registry: The configured environments
            transport: Optional httpx transport shared by all clients
        """
        self._registry = registry
        self._transport = transport
        self._clients: Dict[str, httpx.Client] = {}
        self._specs: Dict[str, Dict[str, Any]] = {}
        self._operations: Dict[str, List[Operation]] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> EnvironmentRegistry:
        """The environment registry this client serves."""
        return self._registry

    def _client(self, config: EnvironmentConfig) -> httpx.Client:
        with self._lock:
            client = self._clients.get(config.name)
            if client is None:
                headers = {"Accept": "application/json, application/yaml;q=0.9, */*;q=0.5"}
                if config.auth_token:
                    headers["Authorization"] = f"Bearer {config.auth_token}"
                if not config.verify_tls:
                    logger.warning("TLS certificate verification disabled for environment '%s'", config.name)
                client = httpx.Client(
                    verify=config.verify_tls,
                    timeout=config.timeout,
                    headers=headers,
                    transport=self._transport,
                    follow_redirects=True,
                )
                self._clients[config.name] = client
            return client

    def fetch_spec(self, environment: Optional[str] = None, refresh: bool = False) -> Dict[str, Any]:
        """Fetch the OpenAPI document of an environment.

        Args:
            environment: Environment name. The default environment is used when None.
            refresh: Ignore the cached document

        Returns:
            The parsed document

        Raises:
            UnknownEnvironmentError: If the environment is not configured
            SpecFetchError: If the document cannot be fetched or parsed
        """
        config = self._registry.get(environment)
        if not refresh and config.name in self._specs:
            return self._specs[config.name]

        if not config.spec_url:
            raise SpecFetchError(f"No spec URL configured for environment '{config.name}'")

        logger.info("Fetching OpenAPI document for '%s' from %s", config.name, config.spec_url)
        try:
            response = self._client(config).get(config.spec_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SpecFetchError(
                f"Failed to fetch spec for '{config.name}': HTTP {e.response.status_code} from {config.spec_url}"
            ) from e
        except httpx.HTTPError as e:
            raise SpecFetchError(f"Failed to fetch spec for '{config.name}': {e}") from e

        document = self._parse_document(response.text, config)
        self._specs[config.name] = document
        self._operations.pop(config.name, None)
        return document

    def _parse_document(self, text: str, config: EnvironmentConfig) -> Dict[str, Any]:
        try:
            document = json.loads(text)
        except ValueError:
            try:
                document = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise SpecFetchError(f"Spec for '{config.name}' is neither JSON nor YAML: {e}") from e
        if not isinstance(document, dict):
            raise SpecFetchError(f"Spec for '{config.name}' is not an object")
        return document

    def operations(self, environment: Optional[str] = None, refresh: bool = False) -> List[Operation]:
        """Get the operations of an environment's document."""
        config = self._registry.get(environment)
        document = self.fetch_spec(config.name, refresh=refresh)
        if config.name not in self._operations:
            self._operations[config.name] = extract_operations(document)
        return self._operations[config.name]

    def base_url(self, environment: Optional[str] = None) -> str:
        """Resolve the API base URL of an environment.

        The configured base URL wins. Otherwise the first server URL of the
        document is used, resolved against the spec URL. Swagger 2.0
        documents use host/basePath. The spec URL origin is the last resort.

        Returns:
            Base URL without a trailing slash
        """
        config = self._registry.get(environment)
        if config.base_url:
            return config.base_url.rstrip("/")

        document = self.fetch_spec(config.name)
        spec_url = config.spec_url or ""
        servers = document.get("servers") or []
        if servers and isinstance(servers[0], dict) and servers[0].get("url"):
            return urljoin(spec_url, _expand_server_url(servers[0])).rstrip("/")

        parts = urlsplit(spec_url)
        if document.get("swagger") and document.get("host"):
            schemes = document.get("schemes") or [parts.scheme or "https"]
            return f"{schemes[0]}://{document['host']}{document.get('basePath', '')}".rstrip("/")
        return f"{parts.scheme}://{parts.netloc}"

    def request(
        self,
        environment: Optional[str],
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[Dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Call the API of an environment.

        Args:
            environment: Environment name. The default environment is used when None.
            method: HTTP method
            path: Path relative to the base URL, parameters already substituted
            params: Query parameters
            headers: Extra request headers
            cookies: Request cookies
            json_body: JSON body

        Returns:
            Dictionary with status_code, headers and body (parsed JSON when possible)

        Raises:
            APICallError: If the request cannot be sent
        """
        config = self._registry.get(environment)
        url = self.base_url(config.name) + "/" + path.lstrip("/")
        headers = dict(headers or {})
        if cookies:
            # httpx only supports client-level cookie jars
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in cookies.items())

        logger.debug("%s %s", method, url)
        try:
            response = self._client(config).request(
                method,
                url,
                params=params or None,
                headers=headers or None,
                json=json_body,
            )
        except httpx.HTTPError as e:
            raise APICallError(f"{method} {url} failed: {e}") from e

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        return {
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": body,
        }

    def close(self) -> None:
        """Close all HTTP clients."""
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()
