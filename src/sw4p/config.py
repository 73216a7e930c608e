"""Application configuration using pydantic-settings.

Controls the approval mode (manual review vs automatic fast-path), the
exchange gateway, and the deposit detection timings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/sw4p.db",
        description="Database connection URL",
    )
    db_echo: bool = Field(default=False, description="Log SQL statements")

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=5001, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Approval workflow
    # ======================
    auto_approve: bool = Field(
        default=False,
        description="Approve deposit intents on creation instead of waiting for an admin",
    )
    deposit_detector: str = Field(
        default="",
        description="Deposit detector: chain or simulated (empty = simulated when auto_approve)",
    )

    # ======================
    # Exchange gateway
    # ======================
    gateway: str = Field(default="dryrun", description="Exchange gateway: dryrun or obiex")
    obiex_api_key: str = Field(default="", description="Obiex API key")
    obiex_api_secret: str = Field(default="", description="Obiex API secret")
    obiex_sandbox: bool = Field(default=False, description="Use the Obiex staging API")
    obiex_signature_secret: Optional[str] = Field(
        default=None, description="Secret for verifying Obiex webhook signatures"
    )
    gateway_timeout: float = Field(
        default=30.0, description="Seconds before a gateway call is treated as failed"
    )
    lock_timeout: float = Field(
        default=30.0, description="Seconds to wait for a busy intent before answering 409"
    )

    # ======================
    # Chain monitoring
    # ======================
    monitor_interval: float = Field(
        default=30.0, description="Seconds between blockchain polls for a monitored intent"
    )
    min_confirmations: int = Field(
        default=2, description="Confirmations required before a deposit is acted upon"
    )
    etherscan_api_key: str = Field(default="", description="Etherscan API key")
    btc_testnet: bool = Field(default=False, description="Query the Blockstream testnet API")

    # ======================
    # Simulated detection (automatic path)
    # ======================
    simulated_detection_min_delay: float = Field(default=10.0)
    simulated_detection_max_delay: float = Field(default=30.0)
    simulated_processing_min_delay: float = Field(default=2.0)
    simulated_processing_max_delay: float = Field(default=5.0)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def detector_mode(self) -> str:
        """Detector used for newly approved intents."""
        mode = self.deposit_detector.lower().strip()
        if mode in ("chain", "simulated"):
            return mode
        return "simulated" if self.auto_approve else "chain"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "approval": {
                "auto_approve": self.auto_approve,
                "detector": self.detector_mode,
            },
            "gateway": {
                "name": self.gateway,
                "sandbox": self.obiex_sandbox,
                "api_key": "***" if self.obiex_api_key else "(not set)",
                "timeout": self.gateway_timeout,
            },
            "lock_timeout": self.lock_timeout,
            "monitoring": {
                "interval": self.monitor_interval,
                "min_confirmations": self.min_confirmations,
                "etherscan_api_key": "***" if self.etherscan_api_key else "(not set)",
                "btc_testnet": self.btc_testnet,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
