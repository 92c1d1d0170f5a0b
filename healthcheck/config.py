from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

# Portal module flags as listed in PORTAL_MODULES
MODULE_ACCOUNTS = "a"
MODULE_BLOCKER = "b"


class ConfigError(Exception):
    """Raised when the process cannot start with the given configuration."""


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file.

    Built once at process start and passed explicitly to everything that
    needs it. Instances are immutable; use ``model_copy(update=...)`` to
    derive an adjusted copy (e.g. from CLI flags).
    """

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_ignore_empty": True,
        "frozen": True,
    }

    # Portal under test
    portal_domain: str = ""
    server_domain: str = ""  # direct address of this node in multi-server portals
    accounts_test_user_api_key: str = ""

    # Optional services
    accounts_enabled: bool = False
    accounts_limit_access: str = ""  # "authenticated" | "subscription" | ""
    portal_modules: str = ""  # e.g. "ab" = accounts + blocker
    blocker_host: str = "10.10.10.110"
    blocker_port: int = 4000
    skyd_url: str = "http://10.10.10.10:9980"

    # Takedown switch, reported by the disabled endpoint
    deny_public_access: bool = False

    # Egress IP override (set via Dockerfile) and lookup service
    serverip: str = ""
    ip_check_service: str = "whatismyip.akamai.com"

    # Probes
    request_timeout: float = 30.0  # seconds, per request
    retry_attempts: int = 2
    retry_delay: float = 3.0  # seconds

    # Result store
    state_dir: str = "state"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3100

    # Logging
    log_level: str = "INFO"

    @property
    def portal_url(self) -> str:
        return f"https://{self.portal_domain}"

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir) / "state.json"

    @property
    def api_headers(self) -> dict[str, str]:
        """Headers sent with every request against the portal."""
        if self.accounts_test_user_api_key:
            return {"Skynet-Api-Key": self.accounts_test_user_api_key}
        return {}

    def is_portal_module_enabled(self, module: str) -> bool:
        return module in self.portal_modules

    def validate_startup(self) -> None:
        """Abort before any probe runs if required settings are missing."""
        if not self.portal_domain:
            raise ConfigError("PORTAL_DOMAIN environment variable cannot be empty")

        if (
            self.is_portal_module_enabled(MODULE_ACCOUNTS)
            and self.accounts_limit_access in ("authenticated", "subscription")
            and not self.accounts_test_user_api_key
        ):
            raise ConfigError("ACCOUNTS_TEST_USER_API_KEY environment variable cannot be empty")
