# tests/test_config.py
from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from caprewards.env import load_dotenv_if_present, reset_dotenv_state
from caprewards.runtime.config import (
    apply_engine_config_to_env,
    default_engine_config,
    engine_config_from_dict,
    load_engine_config,
    read_engine_config_file,
    validate_engine_config,
)


def test_defaults_are_production_safe() -> None:
    cfg = default_engine_config()
    validate_engine_config(cfg)
    assert cfg.mode == "prod"
    assert cfg.api_host == "127.0.0.1"
    assert cfg.enforce_cr_on_claim is False
    assert cfg.treasury != cfg.breakage_sink


def test_read_json_config(tmp_path: Path) -> None:
    p = tmp_path / "rewards.json"
    p.write_text(
        json.dumps(
            {
                "mode": "DEV",
                "admin": "ops",
                "distributor": "dist",
                "max_claim_tokens_per_tx": "5000",
                "enforce_cr_on_claim": "yes",
                "db_path": str(tmp_path / "r.db"),
                "log_level": "debug",
            }
        ),
        encoding="utf-8",
    )
    cfg = read_engine_config_file(str(p))
    assert cfg.mode == "dev"
    assert cfg.admin == "ops"
    assert cfg.distributor == "dist"
    assert cfg.max_claim_tokens_per_tx == 5000
    assert cfg.enforce_cr_on_claim is True
    assert cfg.log_level == "DEBUG"
    # Unset fields fall back to defaults.
    assert cfg.api_port == default_engine_config().api_port


def test_read_yaml_config(tmp_path: Path) -> None:
    p = tmp_path / "rewards.yaml"
    p.write_text(
        "mode: testnet\n"
        "admin: ops\n"
        "treasury: TREASURY_MAIN\n"
        "breakage_sink: SINK\n"
        "block_distribute_on_depeg: true\n"
        "max_tokens_to_mint_per_epoch: 1000000\n"
        "api_port: 9100\n",
        encoding="utf-8",
    )
    cfg = read_engine_config_file(str(p))
    assert cfg.mode == "testnet"
    assert cfg.treasury == "TREASURY_MAIN"
    assert cfg.breakage_sink == "SINK"
    assert cfg.block_distribute_on_depeg is True
    assert cfg.max_tokens_to_mint_per_epoch == 1_000_000
    assert cfg.api_port == 9100


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "c.json"
    p.write_text(json.dumps({"mode": "dev", "admin": "from-env"}), encoding="utf-8")
    monkeypatch.setenv("CAPREWARDS_CONFIG_PATH", str(p))
    assert load_engine_config().admin == "from-env"

    monkeypatch.delenv("CAPREWARDS_CONFIG_PATH")
    assert load_engine_config().admin == default_engine_config().admin


@pytest.mark.parametrize(
    "override",
    [
        {"mode": "staging"},
        {"api_port": 70000},
        {"db_path": " "},
        {"log_level": "LOUD"},
        {"max_claim_tokens_per_tx": -1},
    ],
)
def test_invalid_config_fails_fast(override) -> None:
    cfg = replace(default_engine_config(), **override)
    with pytest.raises(ValueError):
        validate_engine_config(cfg)


def test_sink_and_treasury_must_differ() -> None:
    with pytest.raises(ValueError):
        engine_config_from_dict({"treasury": "SAME", "breakage_sink": "SAME"})


def test_non_mapping_file_is_rejected(tmp_path: Path) -> None:
    p = tmp_path / "list.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_engine_config_file(str(p))


def test_apply_config_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in ("CAPREWARDS_MODE", "CAPREWARDS_DB_PATH", "CAPREWARDS_LOG_LEVEL"):
        monkeypatch.setenv(k, "")
    cfg = engine_config_from_dict({"mode": "dev", "db_path": "/tmp/x.db"})
    apply_engine_config_to_env(cfg)
    assert os.environ["CAPREWARDS_MODE"] == "dev"
    assert os.environ["CAPREWARDS_DB_PATH"] == "/tmp/x.db"
    assert os.environ["CAPREWARDS_LOG_LEVEL"] == "INFO"


def test_dotenv_loads_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("CAPREWARDS_DOTENV_MARKER=loaded\n", encoding="utf-8")
    monkeypatch.setenv("CAPREWARDS_DOTENV_MARKER", "")
    monkeypatch.delenv("CAPREWARDS_DOTENV_MARKER")

    reset_dotenv_state()
    assert load_dotenv_if_present(str(env_file)) is True
    assert os.environ["CAPREWARDS_DOTENV_MARKER"] == "loaded"
    assert load_dotenv_if_present(str(env_file)) is False

    reset_dotenv_state()
    assert load_dotenv_if_present(str(tmp_path / "missing.env")) is False
    reset_dotenv_state()
