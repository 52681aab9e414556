from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_ENV_LOADED = False


def _load_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    env_path = Path(os.environ.get("ARB_ENV_FILE", Path.cwd() / ".env"))
    load_dotenv(dotenv_path=env_path)
    _ENV_LOADED = True


def get_env(
    name: str, default: str | None = None, required: bool = False
) -> str | None:
    _load_env()
    value = os.environ.get(name, default)
    if required and (value is None or value == ""):
        raise SystemExit(f"{name} env var is required")
    return value


def _env_decimal(name: str, default: str) -> Decimal:
    raw = get_env(name, default) or default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        raise SystemExit(f"{name} must be a number, got {raw!r}") from None
    if not value.is_finite():
        raise SystemExit(f"{name} must be finite, got {raw!r}")
    return value


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = get_env(name, str(default)) or str(default)
    try:
        value = int(raw.strip())
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise SystemExit(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_fee_bps(name: str, default: str) -> Decimal:
    value = _env_decimal(name, default)
    if value < 0 or value >= 10_000:
        raise SystemExit(f"{name} must be in [0, 10000) bps, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    rpc_urls: tuple[str, ...]
    pool_address: str
    cex_symbol: str = "ETH/USDC"
    cex_source: str = "ws"
    cex_ws_url: str = "wss://stream.binance.com:9443/ws"
    token0_decimals: int = 6
    token1_decimals: int = 18
    min_pnl: Decimal = Decimal(0)
    # None means "read the pool's fee tier"
    dex_fee_bps: Optional[Decimal] = Decimal(30)
    cex_fee_bps: Decimal = Decimal(10)
    gas_units: int = 350_000
    gas_multiplier: Decimal = Decimal("1.2")
    book_levels: int = 1
    segment_depth: int = 12
    tick_interval: float = 1.0
    pool_refresh_interval: float = 5.0
    gas_refresh_interval: float = 10.0

    @property
    def base_symbol(self) -> str:
        return self.cex_symbol.split("/")[0]

    @property
    def quote_symbol(self) -> str:
        parts = self.cex_symbol.split("/")
        return parts[1] if len(parts) > 1 else "USD"


def load_settings() -> Settings:
    """Read and validate settings from the environment (and ``.env``)."""
    rpc_raw = get_env("RPC_URLS", required=True) or ""
    rpc_urls = tuple(url.strip() for url in rpc_raw.split(",") if url.strip())
    if not rpc_urls:
        raise SystemExit("RPC_URLS must list at least one URL")

    cex_source = (get_env("CEX_SOURCE", "ws") or "ws").lower()
    if cex_source not in ("ws", "rest"):
        raise SystemExit(f"CEX_SOURCE must be 'ws' or 'rest', got {cex_source!r}")

    dex_fee_raw = (get_env("DEX_FEE_BPS", "30") or "30").strip().lower()
    dex_fee_bps = None if dex_fee_raw == "auto" else _env_fee_bps("DEX_FEE_BPS", "30")

    gas_multiplier = _env_decimal("GAS_MULTIPLIER", "1.2")
    if gas_multiplier <= 0:
        raise SystemExit(f"GAS_MULTIPLIER must be positive, got {gas_multiplier}")

    intervals = {
        name: _env_decimal(name, default)
        for name, default in (
            ("TICK_INTERVAL", "1"),
            ("POOL_REFRESH_INTERVAL", "5"),
            ("GAS_REFRESH_INTERVAL", "10"),
        )
    }
    for name, value in intervals.items():
        if value <= 0:
            raise SystemExit(f"{name} must be positive, got {value}")

    return Settings(
        rpc_urls=rpc_urls,
        pool_address=get_env("POOL_ADDRESS", required=True) or "",
        cex_symbol=get_env("CEX_SYMBOL", "ETH/USDC") or "ETH/USDC",
        cex_source=cex_source,
        cex_ws_url=get_env("CEX_WS_URL", Settings.cex_ws_url) or Settings.cex_ws_url,
        token0_decimals=_env_int("TOKEN0_DECIMALS", 6),
        token1_decimals=_env_int("TOKEN1_DECIMALS", 18),
        min_pnl=_env_decimal("MIN_PNL", "0"),
        dex_fee_bps=dex_fee_bps,
        cex_fee_bps=_env_fee_bps("CEX_FEE_BPS", "10"),
        gas_units=_env_int("GAS_UNITS", 350_000),
        gas_multiplier=gas_multiplier,
        book_levels=_env_int("BOOK_LEVELS", 1, minimum=1),
        segment_depth=_env_int("SEGMENT_DEPTH", 12),
        tick_interval=float(intervals["TICK_INTERVAL"]),
        pool_refresh_interval=float(intervals["POOL_REFRESH_INTERVAL"]),
        gas_refresh_interval=float(intervals["GAS_REFRESH_INTERVAL"]),
    )
