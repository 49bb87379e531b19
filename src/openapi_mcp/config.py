"""Server and API environment configuration.

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

import logging
import os
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_TIMEOUT = 30.0

# TLS verification cannot be switched off for these environments
PRODUCTION_ENVIRONMENTS = frozenset({"prod", "production"})

_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ConfigurationError(Exception):
    """Raised when the server configuration is unusable."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        """Initialize configuration error.

        Args:
            message: Error message (first line of the diagnostic)
            errors: Additional lines explaining how to fix the configuration
        """
        self.message = message
        self.errors = errors or []

        if self.errors:
            full_message = "\n".join([message, ""] + self.errors)
        else:
            full_message = message

        super().__init__(full_message)

    def lines(self) -> List[str]:
        """Return the diagnostic as output lines."""
        if not self.errors:
            return [self.message]
        return [self.message, ""] + self.errors


class UnknownEnvironmentError(ConfigurationError):
    """Raised when a caller names an environment that is not configured."""


class ServerConfig(BaseModel):
    """Process-level server settings."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="openapi-mcp-server", description="MCP server name")
    version: str = Field(default="0.1.0", description="Server version")
    host: str = Field(default="0.0.0.0", description="Bind host for the HTTP listener")
    default_port: int = Field(default=DEFAULT_PORT, description="Port used when PORT is not set")
    mcp_path: str = Field(default="/mcp", description="Path of the streamable HTTP endpoint")
    log_level: str = Field(default="INFO", description="Logging level")


class EnvironmentConfig(BaseModel):
    """Connection metadata for one API environment."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Environment name")
    spec_url: Optional[str] = Field(default=None, description="URL of the OpenAPI document")
    base_url: Optional[str] = Field(default=None, description="API base URL override")
    auth_token: Optional[str] = Field(default=None, description="Bearer token sent with requests", repr=False)
    verify_tls: bool = Field(default=True, description="Verify TLS certificates on outbound calls")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Request timeout in seconds")


def remediation_lines() -> List[str]:
    """Lines explaining how to configure environments.

    Returns:
        The example-driven remediation block, without the leading error line
    """
    return [
        "Please configure at least one environment:",
        "",
        "Example - Single environment:",
        "  ENVIRONMENTS=prod",
        "  API_SPEC_URL_PROD=https://api.example.com/openapi/v1.json",
        "",
        "Example - Multiple environments:",
        "  ENVIRONMENTS=dev,qa,prod",
        "  DEFAULT_ENVIRONMENT=dev",
        "  API_SPEC_URL_DEV=https://dev-api.example.com/openapi/v1.json",
        "  API_SPEC_URL_QA=https://qa-api.example.com/openapi/v1.json",
        "  API_SPEC_URL_PROD=https://api.example.com/openapi/v1.json",
    ]


class EnvironmentRegistry:
    """Validated set of named API environments.

    The registry is built once at startup and is read-only afterwards. It is
    passed explicitly to the app factory, the spec client and the tools.
    """

    def __init__(
        self,
        environments: List[str],
        configs: Mapping[str, EnvironmentConfig],
        default_environment: Optional[str] = None,
    ):
        """Initialize the registry.

        Args:
            environments: Environment names in declaration order. Duplicates
                         are dropped, keeping the first occurrence.
            configs: Mapping of environment name to its configuration. Names
                    without an entry get an empty EnvironmentConfig.
            default_environment: Default environment name. Falls back to the
                                first environment when not provided.
        """
        ordered: List[str] = []
        for name in environments:
            if name not in ordered:
                ordered.append(name)
        self._environments: Tuple[str, ...] = tuple(ordered)
        self._configs: Dict[str, EnvironmentConfig] = {
            name: configs.get(name) or EnvironmentConfig(name=name)
            for name in self._environments
        }
        if not default_environment and self._environments:
            default_environment = self._environments[0]
        self._default_environment = default_environment

    @property
    def environments(self) -> Tuple[str, ...]:
        """Configured environment names in declaration order."""
        return self._environments

    @property
    def default_environment(self) -> Optional[str]:
        """The default environment name."""
        return self._default_environment

    @property
    def configs(self) -> Dict[str, EnvironmentConfig]:
        """Copy of the name -> config mapping."""
        return dict(self._configs)

    def __len__(self) -> int:
        return len(self._environments)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def get(self, name: Optional[str] = None) -> EnvironmentConfig:
        """Get the configuration for an environment.

        Args:
            name: Environment name. The default environment is used when None.

        Returns:
            The environment configuration

        Raises:
            UnknownEnvironmentError: If the environment is not configured
        """
        if name is None:
            name = self._default_environment
        if name is None or name not in self._configs:
            available = ", ".join(self._environments) or "none"
            raise UnknownEnvironmentError(
                f"Unknown environment '{name}'. Available environments: {available}"
            )
        return self._configs[name]

    def validate_non_empty(self) -> Optional[ConfigurationError]:
        """Check that at least one environment is configured.

        Returns:
            None when valid, otherwise a ConfigurationError carrying the
            remediation block. The caller decides whether to terminate.
        """
        if self._environments:
            return None
        return ConfigurationError("ERROR: No API environments configured", remediation_lines())

    def validate_default(self) -> Optional[ConfigurationError]:
        """Check that the default environment is one of the configured ones."""
        if not self._environments or self._default_environment in self._configs:
            return None
        return ConfigurationError(
            f"ERROR: Default environment '{self._default_environment}' is not configured",
            [
                f"Configured environments: {', '.join(self._environments)}",
                "Set DEFAULT_ENVIRONMENT to one of the configured environments or leave it unset.",
            ],
        )

    def validate(self) -> Tuple[bool, List[str]]:
        """Run all registry checks.

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []
        for error in (self.validate_non_empty(), self.validate_default()):
            if error is not None:
                errors.append(error.message)
        return len(errors) == 0, errors

    def describe(self) -> List[str]:
        """Human-readable summary of the configured environments.

        Returns:
            One line listing all environments, one line naming the default,
            then one line per environment with its spec URL
        """
        lines = [
            f"Configured environments: {', '.join(self._environments)}",
            f"Default environment: {self._default_environment}",
        ]
        for name in self._environments:
            spec_url = self._configs[name].spec_url
            lines.append(f"  {name}: {spec_url if spec_url else '<not configured>'}")
        return lines


def _env_key(name: str) -> str:
    return name.upper().replace("-", "_")


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _parse_timeout(value: Optional[str], name: str) -> float:
    if value is None or not value.strip():
        return DEFAULT_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid timeout for environment '{name}': {value!r}")
    if timeout <= 0:
        raise ConfigurationError(f"Timeout for environment '{name}' must be positive, got {value!r}")
    return timeout


def _optional(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_environment_names(value: Optional[str]) -> List[str]:
    """Split a comma-separated ENVIRONMENTS value.

    Args:
        value: Raw variable value (may be None)

    Returns:
        Trimmed, non-empty names in the order given
    """
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def load_environment_config(name: str, environ: Optional[Mapping[str, str]] = None) -> EnvironmentConfig:
    """Build the configuration of one environment from variables.

    Args:
        name: Environment name
        environ: Variable mapping. Defaults to os.environ.

    Returns:
        EnvironmentConfig for the environment
    """
    if environ is None:
        environ = os.environ
    key = _env_key(name)
    verify_tls = _parse_bool(
        environ.get(f"API_TLS_VERIFY_{key}"),
        _parse_bool(environ.get("API_TLS_VERIFY"), True),
    )
    if not verify_tls and name.lower() in PRODUCTION_ENVIRONMENTS:
        logger.warning("Ignoring request to disable TLS verification for production environment '%s'", name)
        verify_tls = True

    return EnvironmentConfig(
        name=name,
        spec_url=_optional(environ, f"API_SPEC_URL_{key}"),
        base_url=_optional(environ, f"API_BASE_URL_{key}"),
        auth_token=_optional(environ, f"API_TOKEN_{key}"),
        verify_tls=verify_tls,
        timeout=_parse_timeout(environ.get(f"API_TIMEOUT_{key}"), name),
    )


def load_environment_registry(environ: Optional[Mapping[str, str]] = None) -> EnvironmentRegistry:
    """Build the environment registry from variables.

    Reads ENVIRONMENTS, DEFAULT_ENVIRONMENT and the per-environment
    API_*_<ENV> variables. Only the shape is parsed here; use
    EnvironmentRegistry.validate_non_empty() and validate_default() to check it.

    Args:
        environ: Variable mapping. Defaults to os.environ.

    Returns:
        The populated EnvironmentRegistry
    """
    if environ is None:
        environ = os.environ
    names = parse_environment_names(environ.get("ENVIRONMENTS"))
    configs = {name: load_environment_config(name, environ) for name in names}
    return EnvironmentRegistry(
        environments=names,
        configs=configs,
        default_environment=_optional(environ, "DEFAULT_ENVIRONMENT"),
    )


def load_server_config(environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
    """Build the server settings from variables."""
    if environ is None:
        environ = os.environ
    defaults = ServerConfig()
    return ServerConfig(
        name=_optional(environ, "SERVER_NAME") or defaults.name,
        host=_optional(environ, "HOST") or defaults.host,
        log_level=(_optional(environ, "LOG_LEVEL") or defaults.log_level).upper(),
    )


def resolve_port(environ: Optional[Mapping[str, str]] = None, default_port: int = DEFAULT_PORT) -> int:
    """Resolve the listening port.

    Args:
        environ: Variable mapping. Defaults to os.environ.
        default_port: Port used when PORT is unset or blank

    Returns:
        The port number

    Raises:
        ConfigurationError: If PORT is not a base-10 integer in 1-65535
    """
    if environ is None:
        environ = os.environ
    value = environ.get("PORT")
    if value is None or not value.strip():
        return default_port
    try:
        port = int(value.strip(), 10)
    except ValueError:
        raise ConfigurationError(f"Invalid PORT value: {value!r}")
    if not 0 < port < 65536:
        raise ConfigurationError(f"PORT out of range: {port}")
    return port
