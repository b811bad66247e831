# src/caprewards/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class EngineConfig:
    mode: str  # "dev" | "testnet" | "prod"

    # Wiring. The admin is the only account that exists at boot; the rest
    # are granted/assigned through the same admin calls an operator would use.
    admin: str
    distributor: str
    treasury: str
    breakage_sink: str

    enforce_cr_on_claim: bool
    max_claim_tokens_per_tx: int
    max_tokens_to_mint_per_epoch: int
    block_distribute_on_depeg: bool

    # Single SQLite DB file for the engine snapshot.
    db_path: str

    api_host: str
    api_port: int

    log_level: str

    def to_dict(self) -> Json:
        return asdict(self)


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if not isinstance(cfg.admin, str) or not cfg.admin.strip():
        raise ValueError("admin must be a non-empty string")

    for name, v in (
        ("distributor", cfg.distributor),
        ("treasury", cfg.treasury),
        ("breakage_sink", cfg.breakage_sink),
    ):
        if not isinstance(v, str):
            raise ValueError(f"{name} must be a string")

    if cfg.breakage_sink and cfg.breakage_sink == cfg.treasury:
        # The sink is permanently excluded; the treasury must stay free to hold.
        raise ValueError("breakage_sink and treasury must be different accounts")

    for name, n in (
        ("max_claim_tokens_per_tx", cfg.max_claim_tokens_per_tx),
        ("max_tokens_to_mint_per_epoch", cfg.max_tokens_to_mint_per_epoch),
    ):
        if int(n) < 0:
            raise ValueError(f"{name} must be >= 0 (0 disables); got: {n}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if str(cfg.log_level).upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")


def default_engine_config() -> EngineConfig:
    return EngineConfig(
        # No config file means no dev-only routes.
        mode="prod",
        admin="admin",
        distributor="",
        treasury="TREASURY",
        breakage_sink="BREAKAGE_SINK",
        enforce_cr_on_claim=False,
        max_claim_tokens_per_tx=0,
        max_tokens_to_mint_per_epoch=0,
        block_distribute_on_depeg=False,
        db_path="./data/caprewards.db",
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
    )


def _read_raw(p: Path) -> Any:
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yml", ".yaml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def engine_config_from_dict(raw: Json) -> EngineConfig:
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a mapping")

    d = default_engine_config()
    cfg = EngineConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        admin=_as_str(raw.get("admin"), d.admin).strip(),
        distributor=str(raw.get("distributor") or d.distributor).strip(),
        treasury=_as_str(raw.get("treasury"), d.treasury).strip(),
        breakage_sink=_as_str(raw.get("breakage_sink"), d.breakage_sink).strip(),
        enforce_cr_on_claim=_as_bool(raw.get("enforce_cr_on_claim"), d.enforce_cr_on_claim),
        max_claim_tokens_per_tx=_as_int(raw.get("max_claim_tokens_per_tx"), d.max_claim_tokens_per_tx),
        max_tokens_to_mint_per_epoch=_as_int(
            raw.get("max_tokens_to_mint_per_epoch"), d.max_tokens_to_mint_per_epoch
        ),
        block_distribute_on_depeg=_as_bool(raw.get("block_distribute_on_depeg"), d.block_distribute_on_depeg),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).upper(),
    )
    validate_engine_config(cfg)
    return cfg


def read_engine_config_file(path: str) -> EngineConfig:
    """Read a JSON (default) or YAML (.yml/.yaml) config file."""
    raw = _read_raw(Path(path))
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a JSON/YAML object")
    return engine_config_from_dict(raw)


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("CAPREWARDS_CONFIG_PATH")
    if p:
        return read_engine_config_file(p)

    cfg = default_engine_config()
    validate_engine_config(cfg)
    return cfg


def apply_engine_config_to_env(cfg: EngineConfig) -> None:
    validate_engine_config(cfg)
    os.environ["CAPREWARDS_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["CAPREWARDS_DB_PATH"] = cfg.db_path
    os.environ["CAPREWARDS_LOG_LEVEL"] = cfg.log_level
