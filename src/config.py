"""
Configuration module for the Morpheus provider.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DELETE_NOT_FOUND_POLICIES = ("ignore", "error")


@dataclass
class MorpheusConfig:
    """Connection settings for the Morpheus appliance."""

    url: str = ""
    access_token: str = field(default="", repr=False)  # Never log credentials
    username: str = ""
    password: str = field(default="", repr=False)
    client_id: str = "morph-api"
    insecure: bool = False
    timeout: int = 30  # seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        url = os.getenv("MORPHEUS_URL", "")
        if not url:
            raise ValueError(
                "MORPHEUS_URL environment variable must be set. "
                "The appliance URL cannot be empty."
            )

        access_token = os.getenv("MORPHEUS_ACCESS_TOKEN", "")
        username = os.getenv("MORPHEUS_USERNAME", "")
        password = os.getenv("MORPHEUS_PASSWORD", "")
        if not access_token and not (username and password):
            raise ValueError(
                "Either MORPHEUS_ACCESS_TOKEN or both MORPHEUS_USERNAME and "
                "MORPHEUS_PASSWORD must be set."
            )

        return cls(
            url=url.rstrip("/"),
            access_token=access_token,
            username=username,
            password=password,
            client_id=os.getenv("MORPHEUS_CLIENT_ID", "morph-api"),
            insecure=os.getenv("MORPHEUS_INSECURE", "false").lower() == "true",
            timeout=int(os.getenv("MORPHEUS_TIMEOUT", "30")),
        )


@dataclass
class ProviderConfig:
    """Reconciliation behaviour shared by every resource kind."""

    delete_not_found_policy: str = "ignore"
    max_concurrent_reconciles: int = 5
    state_file: str = "morpheus.tfstate.json"
    log_level: str = "INFO"

    def __post_init__(self):
        if self.delete_not_found_policy not in DELETE_NOT_FOUND_POLICIES:
            raise ValueError(
                f"Invalid delete not-found policy: {self.delete_not_found_policy}. "
                f"Expected one of: {', '.join(DELETE_NOT_FOUND_POLICIES)}"
            )

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            delete_not_found_policy=os.getenv(
                "DELETE_NOT_FOUND_POLICY", "ignore"
            ).lower(),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            state_file=os.getenv("STATE_FILE", "morpheus.tfstate.json"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class Config:
    """Main configuration object."""

    morpheus: MorpheusConfig
    provider: ProviderConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            morpheus=MorpheusConfig.from_env(),
            provider=ProviderConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            morpheus=MorpheusConfig(),
            provider=ProviderConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
