# signalgate/core/config.py
from __future__ import annotations

import logging
from typing import Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger("signalgate.config")

MAINNET_FAPI_URL = "https://fapi.binance.com"
TESTNET_FAPI_URL = "https://testnet.binancefuture.com"


def _parse_pair(v: Any) -> str:
    """
    Accepts "ethusdt", " ETHUSDT ", None.
    Returns uppercase, trimmed symbol ("" for None).
    """
    if v is None:
        return ""
    return str(v).strip().upper()


class Settings(BaseSettings):
    """Runtime configuration loaded from .env / environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --- Exchange / API ---
    BINANCE_API_KEY: str = ""
    BINANCE_API_SECRET: str = ""

    # If you use demo/testnet, set BINANCE_ENV=testnet (recommended)
    BINANCE_ENV: str = "mainnet"  # mainnet/testnet
    BINANCE_FAPI_BASE_URL: str = MAINNET_FAPI_URL
    BINANCE_RECV_WINDOW: int = 5000
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # --- Execution ---
    EXECUTION_MODE: str = "paper"  # paper/live
    DEFAULT_PAIR: str = "ETHUSDT"

    # "global": one cycle state for every pair, "pair": one per pair
    STATE_SCOPE: str = "global"

    # --- Sizing ---
    # Margin per trade (before leverage), doubled after a losing streak
    BASE_MARGIN_USDT: float = 20.0
    MIN_NOTIONAL_USDT: float = 20.0
    LOT_PRECISION: int = 3

    # --- Leverage tiers ---
    LEVERAGE_HIGH: int = 20  # size multiplier 2
    LEVERAGE_LOW: int = 10  # size multiplier 1

    # live position below this (absolute) counts as flat
    POSITION_EPSILON: float = 1e-4

    # --- Persistence / logs ---
    DB_PATH: str = "data/signalgate.db"
    ACTIVITY_LOG_PATH: str = "logs/activity.jsonl"
    MAX_ALERT_RECORDS: int = 300
    LOG_LEVEL: str = "INFO"

    # --- HTTP service ---
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 3000

    @field_validator("DEFAULT_PAIR", mode="before")
    @classmethod
    def parse_default_pair(cls, v: Any) -> str:
        return _parse_pair(v)

    def model_post_init(self, __context: Any) -> None:
        # Normalize env
        self.BINANCE_ENV = (self.BINANCE_ENV or "mainnet").lower().strip()
        self.EXECUTION_MODE = (self.EXECUTION_MODE or "paper").lower().strip()
        self.STATE_SCOPE = (self.STATE_SCOPE or "global").lower().strip()
        self.LOG_LEVEL = (self.LOG_LEVEL or "INFO").upper().strip()

        # Keep base URL consistent with BINANCE_ENV unless user explicitly overrides
        if self.BINANCE_ENV == "testnet":
            if self.BINANCE_FAPI_BASE_URL.strip() == MAINNET_FAPI_URL:
                self.BINANCE_FAPI_BASE_URL = TESTNET_FAPI_URL
                log.debug("BINANCE_ENV=testnet, using %s", TESTNET_FAPI_URL)

    @property
    def is_live(self) -> bool:
        return self.EXECUTION_MODE == "live"

    def leverage_for_multiplier(self, size_multiplier: int) -> int:
        return self.LEVERAGE_HIGH if int(size_multiplier) == 2 else self.LEVERAGE_LOW

    def validate_runtime(self) -> List[str]:
        """
        Fail-fast validation. Returns warnings (non-fatal).
        Raises ValueError for fatal misconfiguration.
        """
        errors: List[str] = []
        warnings: List[str] = []

        if self.EXECUTION_MODE not in {"paper", "live"}:
            errors.append("EXECUTION_MODE must be 'paper' or 'live'.")

        if self.BINANCE_ENV not in {"mainnet", "testnet"}:
            errors.append("BINANCE_ENV must be 'mainnet' or 'testnet'.")

        if self.STATE_SCOPE not in {"global", "pair"}:
            errors.append("STATE_SCOPE must be 'global' or 'pair'.")

        if not self.DEFAULT_PAIR:
            errors.append("DEFAULT_PAIR must not be empty.")

        # Sizing sanity
        if self.BASE_MARGIN_USDT <= 0:
            errors.append("BASE_MARGIN_USDT must be > 0.")

        if self.LOT_PRECISION < 0:
            errors.append("LOT_PRECISION must be >= 0.")

        if self.MIN_NOTIONAL_USDT > 0 and self.BASE_MARGIN_USDT < self.MIN_NOTIONAL_USDT:
            warnings.append(
                f"BASE_MARGIN_USDT ({self.BASE_MARGIN_USDT}) is below MIN_NOTIONAL_USDT "
                f"({self.MIN_NOTIONAL_USDT}). Un-doubled entries will be skipped."
            )

        # Leverage sanity
        if self.LEVERAGE_LOW < 1 or self.LEVERAGE_HIGH < 1:
            errors.append("LEVERAGE_LOW and LEVERAGE_HIGH must be >= 1.")
        if self.LEVERAGE_LOW > self.LEVERAGE_HIGH:
            warnings.append(
                "LEVERAGE_LOW is greater than LEVERAGE_HIGH; check if this is intended."
            )

        if self.HTTP_TIMEOUT_SECONDS <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be > 0.")

        if self.MAX_ALERT_RECORDS < 1:
            errors.append("MAX_ALERT_RECORDS must be >= 1.")

        # Safety: mismatch guard
        if (
            self.BINANCE_FAPI_BASE_URL.strip() == MAINNET_FAPI_URL
            and self.BINANCE_ENV != "mainnet"
        ):
            errors.append(
                "BINANCE_ENV mismatch: base URL is mainnet but BINANCE_ENV is not 'mainnet'."
            )

        if self.is_live and not (self.BINANCE_API_KEY and self.BINANCE_API_SECRET):
            errors.append("EXECUTION_MODE=live requires BINANCE_API_KEY and BINANCE_API_SECRET.")

        # Safety warning for real money
        if self.is_live and self.BINANCE_ENV == "mainnet":
            warnings.append(
                "EXECUTION_MODE=live with BINANCE_ENV=mainnet will trade REAL money. "
                "If you meant demo/testnet, set BINANCE_ENV=testnet (recommended)."
            )

        if errors:
            msg = "Config validation failed:\n" + "\n".join([f"- {e}" for e in errors])
            raise ValueError(msg)

        return warnings

    def public_dict(self) -> dict:
        data = self.model_dump()
        # mask secrets
        for k in ("BINANCE_API_KEY", "BINANCE_API_SECRET"):
            if k in data:
                data[k] = "***"
        return data


Settings.model_rebuild()
settings = Settings()
