"""Tests for config loading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from settings import DEFAULT_CONFIG_PATH, ZERO_ADDRESS, apply_defaults, load_config


class TestApplyDefaults:
    def test_policy_defaults(self, raw_config: dict[str, Any]) -> None:
        config = apply_defaults(raw_config)
        assert config["deployable_balance_fraction"] == 0.40
        assert config["rebalance_threshold"] == 0.10
        assert config["target_allocation_fraction"] == 0.30
        assert config["out_of_range_threshold"] == 10
        assert config["monitoring_interval_minutes"] == 6
        assert config["tick_range_width"] == 5
        assert config["deadline_buffer_seconds"] == 300
        assert config["dry_run"] is False
        assert config["position_id"] is None

    def test_tick_spacing_from_fee_tier(self, raw_config: dict[str, Any]) -> None:
        config = apply_defaults(raw_config)
        assert config["pool"]["tick_spacing"] == 60
        assert config["pool"]["hooks"] == ZERO_ADDRESS

    def test_explicit_tick_spacing_kept(self, raw_config: dict[str, Any]) -> None:
        raw_config["pool"]["tick_spacing"] = 30
        assert apply_defaults(raw_config)["pool"]["tick_spacing"] == 30

    def test_unknown_fee_tier_needs_spacing(self, raw_config: dict[str, Any]) -> None:
        raw_config["pool"]["fee"] = 1234
        with pytest.raises(ValueError):
            apply_defaults(raw_config)

    def test_missing_pool_field(self, raw_config: dict[str, Any]) -> None:
        del raw_config["pool"]["token1"]
        with pytest.raises(ValueError):
            apply_defaults(raw_config)

    def test_owner_from_environment(self, raw_config: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> None:
        del raw_config["owner_address"]
        monkeypatch.setenv("WALLET_ADDRESS", "0xfeed")
        assert apply_defaults(raw_config)["owner_address"] == "0xfeed"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("deployable_balance_fraction", 0),
            ("deployable_balance_fraction", 1.2),
            ("rebalance_threshold", 0.6),
            ("target_allocation_fraction", 0.05),
            ("target_allocation_fraction", 0.7),
            ("out_of_range_threshold", 0),
            ("monitoring_interval_minutes", 0),
            ("tick_range_width", 0),
        ],
    )
    def test_invalid_knobs(self, raw_config: dict[str, Any], field: str, value: float) -> None:
        raw_config[field] = value
        with pytest.raises(ValueError):
            apply_defaults(raw_config)


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.json")

    def test_missing_pool(self, tmp_path: Path) -> None:
        path = tmp_path / "keeper.json"
        path.write_text(json.dumps({"dry_run": True}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_loads_file(self, tmp_path: Path, raw_config: dict[str, Any]) -> None:
        raw_config["tick_range_width"] = 3
        path = tmp_path / "keeper.json"
        path.write_text(json.dumps(raw_config), encoding="utf-8")
        config = load_config(path)
        assert config["tick_range_width"] == 3
        assert config["pool"]["symbol0"] == "USDC"

    def test_shipped_config_is_valid(self) -> None:
        config = load_config(DEFAULT_CONFIG_PATH)
        assert config["pool"]["tick_spacing"] == 60
        assert len(config["stablecoins"]) == 2
