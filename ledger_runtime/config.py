import json
import os

from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the conventional SOLANA_RPC_URL when no primary is configured."""

        super().model_post_init(__context)

        if not self.rpc_primary_url:
            fallback = os.getenv("SOLANA_RPC_URL")
            if fallback:
                object.__setattr__(self, "rpc_primary_url", fallback)

    log_level: str = Field(default="INFO", description="Logging level")

    # Endpoints
    rpc_primary_url: str = Field(
        default="",
        description="Primary RPC endpoint; also the degraded-mode fallback",
        validation_alias=AliasChoices("rpc_primary_url", "LEDGER_RPC_PRIMARY_URL", "LEDGER_RPC_URL"),
    )
    rpc_backup_urls: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Backup RPC endpoints, in failover order (JSON list or comma-separated)",
    )
    rpc_commitment: str = Field(default="confirmed", description="Commitment level for RPC reads")

    @field_validator("rpc_backup_urls", mode="before")
    @classmethod
    def _split_backup_urls(cls, value: Any) -> Any:
        """Accept a JSON list or a comma-separated string."""
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [url.strip() for url in value.split(",") if url.strip()]

    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout")

    # Health monitor
    health_check_interval_ms: int = Field(default=30_000, gt=0, description="Interval between probe cycles")
    health_max_consecutive_errors: int = Field(
        default=3,
        ge=1,
        description="Consecutive errors before an endpoint is marked unhealthy",
    )
    health_latency_threshold_ms: float = Field(
        default=5_000,
        gt=0,
        description="Latency above which an endpoint is considered unhealthy",
    )

    # Confirmation polling
    confirm_max_retries: int = Field(default=40, ge=0, description="Status polls before timing out")
    confirm_interval_ms: float = Field(default=3_000, ge=0, description="Initial poll interval")
    confirm_backoff_multiplier: float = Field(default=1.1, ge=1.0, description="Interval growth per poll")
    confirm_max_interval_ms: Optional[float] = Field(
        default=None,
        gt=0,
        description="Optional ceiling for the poll interval",
    )

    # Throttle
    throttle_min_delay_ms: float = Field(default=100, ge=0, description="Minimum spacing between RPC calls")

    # Cache tiers (milliseconds)
    cache_default_ttl_ms: int = Field(default=30_000, gt=0, description="Default cache TTL")
    cache_ttl_account_info_ms: int = Field(default=10_000, gt=0, description="TTL for account-info reads")
    cache_ttl_balances_ms: int = Field(default=30_000, gt=0, description="TTL for balances")
    cache_ttl_supply_ms: int = Field(default=30_000, gt=0, description="TTL for token supply")
    cache_ttl_metadata_ms: int = Field(default=300_000, gt=0, description="TTL for token metadata")
    cache_ttl_project_config_ms: int = Field(
        default=3_600_000,
        gt=0,
        description="TTL for quasi-static configuration records",
    )

    @property
    def has_backups(self) -> bool:
        return bool(self.rpc_backup_urls)

    @property
    def endpoints(self) -> List[str]:
        """Primary first, then backups, without duplicates."""
        ordered: List[str] = []
        for url in [self.rpc_primary_url, *self.rpc_backup_urls]:
            if url and url not in ordered:
                ordered.append(url)
        return ordered

    def cache_tiers(self) -> Dict[str, int]:
        return {
            "ACCOUNT_INFO": self.cache_ttl_account_info_ms,
            "BALANCES": self.cache_ttl_balances_ms,
            "SUPPLY": self.cache_ttl_supply_ms,
            "METADATA": self.cache_ttl_metadata_ms,
            "PROJECT_CONFIG": self.cache_ttl_project_config_ms,
        }


settings = Settings()
