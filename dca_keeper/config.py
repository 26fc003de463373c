from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_RPC_URLS = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Fill the RPC endpoint from the network name when none is given."""

        super().model_post_init(__context)

        if not self.sui_rpc_url:
            fallback = DEFAULT_RPC_URLS.get(self.sui_network.lower(), DEFAULT_RPC_URLS["mainnet"])
            object.__setattr__(self, "sui_rpc_url", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    api_key: str = Field(
        default="",
        description="Optional API key required on the HTTP endpoints",
        validation_alias=AliasChoices("api_key", "executor_api_key"),
    )

    # Ledger
    sui_network: str = Field(default="mainnet", description="Sui network name")
    sui_rpc_url: str = Field(default="", description="Sui JSON-RPC endpoint")
    request_timeout_seconds: int = Field(default=30, description="RPC request timeout")
    executor_private_key: str = Field(
        default="",
        description="Executor signing key (suiprivkey bech32, 0x hex or base64)",
        repr=False,
    )

    # DCA contract objects
    dca_package_id: str = Field(
        default="0x19852a2e3d8caf1fbc7452d5290d6f71b3df573b7ab3252183756491c45047b4",
        description="DCA Move package id",
    )
    global_config_id: str = Field(
        default="0xe9f6adaea71cee4a1d4a3e48e7a42be8d2aa66f1f21e02ffa38e447d6bf3c13a",
        description="DCA GlobalConfig object id",
    )
    fee_tracker_id: str = Field(
        default="0x5a840524e2c1cad27da155c6cdeff4652b76bcef1c7aad6f1ce51710e8397057",
        description="DCA FeeTracker object id",
    )
    price_feed_registry_id: str = Field(
        default="0xdb8054678f011b6a9d5dbe72b92817bfa904c00729b9c64cc0158ebc2c27d0e0",
        description="Price feed registry used for oracle validation",
    )
    clock_object_id: str = Field(
        default="0x0000000000000000000000000000000000000000000000000000000000000006",
        description="Sui system clock object",
    )

    # Swap aggregator sidecar
    aggregator_url: str = Field(
        default="http://127.0.0.1:8787",
        description="Base URL of the swap aggregator sidecar (quote, swap, build)",
    )

    # Execution
    max_batch_size: int = Field(default=50, ge=1, le=100, description="Max orders per batch")
    executor_reward_claim: int = Field(default=25_000_000, ge=0, description="Executor reward claimed per trade (MIST)")
    dry_run: bool = Field(default=False, description="Dry-run transactions instead of submitting")
    default_slippage_bps: int = Field(default=100, ge=1, le=10_000, description="Aggregator fallback slippage")
    execution_delay_ms: int = Field(default=3000, ge=0, description="Minimum spacing between executions")
    execution_timeout_ms: int = Field(default=30_000, ge=1, description="Timeout per execution (retries included)")
    max_retries: int = Field(default=2, ge=0, description="Extra attempts for transient failures")
    batch_timeout_ms: int = Field(default=55_000, ge=1, description="Deadline for one batch")
    cloud_timeout_ms: int = Field(default=300_000, ge=1, description="Platform execution limit for scheduled runs")

    # Discovery
    discovery_page_size: int = Field(default=100, ge=1, le=1000, description="Events per page")
    discovery_batch_size: int = Field(default=50, ge=1, le=50, description="Objects per multi-get call")
    discovery_concurrency: int = Field(default=10, ge=1, description="Concurrent object fetches")

    @field_validator(
        "dca_package_id",
        "global_config_id",
        "fee_tracker_id",
        "price_feed_registry_id",
        "clock_object_id",
    )
    @classmethod
    def _validate_object_id(cls, value: str) -> str:
        if not value.startswith("0x"):
            raise ValueError(f"Invalid object id format: {value!r}")
        return value

    @property
    def has_private_key(self) -> bool:
        return bool(self.executor_private_key)

    @property
    def created_event_type(self) -> str:
        return f"{self.dca_package_id}::dca::DCACreatedEvent"

    @property
    def completed_event_marker(self) -> str:
        return "TradeCompletedEvent"


@lru_cache(maxsize=1)
def get_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings once per process. Components receive them explicitly."""
    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
