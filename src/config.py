"""
Configuration module for the ONTAP reconciler.

Loads configuration from environment variables or a YAML config file.
A Config value is built once by the entry point and passed explicitly to
every controller and to the reconciler.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from errors import InvalidStateError

DEFAULT_PROFILE_NAME = "default"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class ConnectionProfile:
    """Connection details for one ONTAP cluster."""

    name: str = DEFAULT_PROFILE_NAME
    hostname: str = "localhost"
    username: str = "admin"
    password: str = field(default="", repr=False)  # Never log password
    validate_certs: bool = True
    timeout: int = 60  # seconds per request

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        password = os.getenv("ONTAP_PASSWORD", "")
        if not password:
            raise ValueError(
                "ONTAP_PASSWORD environment variable must be set. "
                "Cluster password cannot be empty."
            )

        return cls(
            name=os.getenv("ONTAP_PROFILE_NAME", DEFAULT_PROFILE_NAME),
            hostname=os.getenv("ONTAP_HOST", "localhost"),
            username=os.getenv("ONTAP_USER", "admin"),
            password=password,
            validate_certs=_env_bool("ONTAP_VALIDATE_CERTS", "true"),
            timeout=int(os.getenv("ONTAP_TIMEOUT", "60")),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Build a profile from a config file entry."""
        if not data.get("password"):
            raise ValueError(
                f"Connection profile '{data.get('name', DEFAULT_PROFILE_NAME)}' "
                "must set a password."
            )
        return cls(
            name=data.get("name", DEFAULT_PROFILE_NAME),
            hostname=data.get("hostname", "localhost"),
            username=data.get("username", "admin"),
            password=data["password"],
            validate_certs=bool(data.get("validate_certs", True)),
            timeout=int(data.get("timeout", 60)),
        )


@dataclass
class PollerConfig:
    """Transition poller configuration."""

    interval: float = 3.0  # seconds between re-reads
    timeout: float = 120.0  # give up waiting after this many seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            interval=float(os.getenv("POLL_INTERVAL", "3")),
            timeout=float(os.getenv("POLL_TIMEOUT", "120")),
        )


@dataclass
class ReconcilerConfig:
    """Reconciliation driver configuration."""

    max_concurrent_reconciles: int = 5
    state_file: str = "ontap-state.json"
    operation_timeout: Optional[float] = None  # seconds, per object operation

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        timeout = os.getenv("OPERATION_TIMEOUT")
        return cls(
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            state_file=os.getenv("STATE_FILE", "ontap-state.json"),
            operation_timeout=float(timeout) if timeout else None,
        )


@dataclass
class Config:
    """Main configuration object."""

    profiles: Dict[str, ConnectionProfile]
    poller: PollerConfig
    reconciler: ReconcilerConfig
    default_profile: str = DEFAULT_PROFILE_NAME
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        profile = ConnectionProfile.from_env()
        return cls(
            profiles={profile.name: profile},
            poller=PollerConfig.from_env(),
            reconciler=ReconcilerConfig.from_env(),
            default_profile=profile.name,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_file(cls, path: str):
        """
        Load configuration from a YAML file.

        The file holds a list of connection_profiles plus optional poller
        and reconciler sections, e.g.::

            connection_profiles:
              - name: cluster4
                hostname: 10.0.0.1
                username: admin
                password: secret
                validate_certs: false
            poller:
              interval: 5
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        profiles: Dict[str, ConnectionProfile] = {}
        for entry in data.get("connection_profiles", []):
            profile = ConnectionProfile.from_dict(entry)
            profiles[profile.name] = profile

        if not profiles:
            raise ValueError(f"No connection_profiles defined in {path}")

        poller = data.get("poller") or {}
        reconciler = data.get("reconciler") or {}
        timeout = reconciler.get("operation_timeout")

        return cls(
            profiles=profiles,
            poller=PollerConfig(
                interval=float(poller.get("interval", 3.0)),
                timeout=float(poller.get("timeout", 120.0)),
            ),
            reconciler=ReconcilerConfig(
                max_concurrent_reconciles=int(
                    reconciler.get("max_concurrent_reconciles", 5)
                ),
                state_file=reconciler.get("state_file", "ontap-state.json"),
                operation_timeout=float(timeout) if timeout is not None else None,
            ),
            default_profile=data.get("default_profile", next(iter(profiles))),
            log_level=data.get("log_level", "INFO"),
        )

    def get_profile(self, name: Optional[str] = None) -> ConnectionProfile:
        """
        Get a connection profile by name.

        Args:
            name: Profile name, or None for the default profile.

        Raises:
            InvalidStateError: If no profile with that name is configured.
        """
        profile_name = name or self.default_profile
        profile = self.profiles.get(profile_name)
        if profile is None:
            available = ", ".join(self.profiles.keys()) or "none"
            raise InvalidStateError(
                f"Unknown connection profile: {profile_name}. "
                f"Available profiles: {available}"
            )
        return profile
