"""Tests for the TS executor wrapper.

subprocess.run is replaced so no Node.js install is needed.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

import executor
from executor import (
    ExecutorError,
    decode_position_info,
    to_balance_pair,
    to_pool_state,
    to_position_snapshot,
)
from pool_models import CreatePositionRequest, RemovePositionRequest
from tick_math import get_sqrt_ratio_at_tick


def _pack_info(pool_id: int, tick_lower: int, tick_upper: int, subscriber: bool = False) -> int:
    return (
        (pool_id << 56)
        | ((tick_upper & 0xFFFFFF) << 32)
        | ((tick_lower & 0xFFFFFF) << 8)
        | (1 if subscriber else 0)
    )


@pytest.fixture
def fake_executor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Point TS_EXECUTOR at a temp dir with stub scripts; queue results on .results."""
    dist = tmp_path / "dist"
    dist.mkdir()
    for name in ("fetch-pool", "swap"):
        (dist / f"{name}.js").write_text("", encoding="utf-8")

    monkeypatch.setattr(executor, "TS_EXECUTOR", tmp_path)
    monkeypatch.setattr(executor, "get_node_command", lambda: "node")
    monkeypatch.setattr(executor.time, "sleep", lambda _: None)

    fake = SimpleNamespace(results=[], calls=[])

    def fake_run(cmd, **kwargs):
        fake.calls.append(cmd)
        return fake.results.pop(0)

    monkeypatch.setattr(executor.subprocess, "run", fake_run)
    return fake


def _completed(returncode: int = 0, stdout: Any = "", stderr: str = "") -> subprocess.CompletedProcess:
    if not isinstance(stdout, str):
        stdout = json.dumps(stdout)
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestDecodePositionInfo:
    def test_negative_and_positive_ticks(self) -> None:
        info = decode_position_info(_pack_info(0xABC, -600, 1200))
        assert info.tick_lower == -600
        assert info.tick_upper == 1200
        assert info.pool_id == 0xABC
        assert info.has_subscriber is False

    def test_extreme_ticks(self) -> None:
        info = decode_position_info(_pack_info(1, -887220, 887220, subscriber=True))
        assert (info.tick_lower, info.tick_upper) == (-887220, 887220)
        assert info.has_subscriber is True


class TestConverters:
    def test_to_pool_state(self) -> None:
        sqrt_price = get_sqrt_ratio_at_tick(-200)
        pool = to_pool_state(
            {
                "poolId": "0x01",
                "currency0": "0xa",
                "currency1": "0xb",
                "fee": 3000,
                "tickSpacing": 60,
                "hooks": "0x0",
                "sqrtPriceX96": str(sqrt_price),
                "tick": -200,
                "liquidity": "123456789",
            }
        )
        assert pool.sqrt_price_x96 == sqrt_price
        assert pool.tick == -200
        assert pool.liquidity == 123456789
        assert pool.tick_spacing == 60

    def test_to_position_snapshot_from_ticks(self) -> None:
        snapshot = to_position_snapshot(
            {"tokenId": "42", "tickLower": -60, "tickUpper": 60, "currentTick": 5, "liquidity": "10"}
        )
        assert snapshot.position_id == "42"
        assert snapshot.in_range is True
        assert snapshot.liquidity == 10
        assert snapshot.sqrt_price_x96 is None

    def test_to_position_snapshot_from_packed_info(self) -> None:
        snapshot = to_position_snapshot(
            {"tokenId": "7", "info": str(_pack_info(5, -120, -60)), "currentTick": 0, "sqrtPriceX96": "79228162514264337593543950336"}
        )
        assert (snapshot.tick_lower, snapshot.tick_upper) == (-120, -60)
        assert snapshot.in_range is False
        assert snapshot.sqrt_price_x96 == 2**96

    def test_to_position_snapshot_without_ticks(self) -> None:
        with pytest.raises(ExecutorError):
            to_position_snapshot({"tokenId": "7", "currentTick": 0})

    def test_to_balance_pair(self) -> None:
        pair = to_balance_pair(
            {
                "token0": {"address": "0xa", "balance": "1500000", "decimals": 6},
                "token1": {"address": "0xb", "balance": "2000000000000000000", "decimals": 18},
            }
        )
        assert (pair.raw0, pair.raw1, pair.decimals0, pair.decimals1) == (1500000, 2 * 10**18, 6, 18)


class TestRunTsScript:
    def test_success(self, fake_executor) -> None:
        fake_executor.results.append(_completed(stdout={"ok": 1}))
        assert executor._run_ts_script("fetch-pool", ["a"]) == {"ok": 1}
        assert fake_executor.calls[0][2:] == ["a"]

    def test_transient_failure_retried(self, fake_executor) -> None:
        fake_executor.results.append(_completed(returncode=1, stderr="socket hang up"))
        fake_executor.results.append(_completed(stdout={"ok": 2}))
        assert executor._run_ts_script("fetch-pool", []) == {"ok": 2}
        assert len(fake_executor.calls) == 2

    def test_non_retryable_failure_raises_immediately(self, fake_executor) -> None:
        fake_executor.results.append(_completed(returncode=1, stdout={"error": "Insufficient balance"}))
        with pytest.raises(ExecutorError) as exc_info:
            executor._run_ts_script("swap", [])
        assert "Insufficient balance" in str(exc_info.value)
        assert exc_info.value.script == "swap"
        assert len(fake_executor.calls) == 1

    def test_success_false_retried_until_exhausted(self, fake_executor) -> None:
        for _ in range(3):
            fake_executor.results.append(_completed(stdout={"success": False, "error": "nonce too low"}))
        with pytest.raises(ExecutorError, match="Failed after 3 attempts"):
            executor._run_ts_script("swap", [])
        assert len(fake_executor.calls) == 3

    def test_garbled_output(self, fake_executor) -> None:
        fake_executor.results.append(_completed(stdout="not json"))
        with pytest.raises(ExecutorError, match="parse JSON"):
            executor._run_ts_script("fetch-pool", [])

    def test_missing_build(self, fake_executor) -> None:
        with pytest.raises(ExecutorError, match="not built"):
            executor._run_ts_script("mint-position", [])


class TestScriptWrappers:
    def test_fetch_pool_passes_pool_key(self, config: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict[str, Any] = {}

        def fake(script_name, args, **kwargs):
            seen["script"], seen["args"] = script_name, args
            return {
                "poolId": "0x01",
                "currency0": args[0],
                "currency1": args[1],
                "fee": 3000,
                "tickSpacing": 60,
                "hooks": args[4],
                "sqrtPriceX96": str(2**96),
                "tick": 0,
                "liquidity": "1",
            }

        monkeypatch.setattr(executor, "_run_ts_script", fake)
        pool = executor.fetch_pool(config["pool"])
        assert seen["script"] == "fetch-pool"
        assert seen["args"][2:4] == ["3000", "60"]
        assert pool.sqrt_price_x96 == 2**96

    def test_mint_position_sends_json_payload(self, config: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict[str, Any] = {}

        def fake(script_name, args, **kwargs):
            seen["payload"] = json.loads(args[0])
            return {"success": True, "tokenId": "99"}

        monkeypatch.setattr(executor, "_run_ts_script", fake)
        request = CreatePositionRequest(
            amount0=10, amount1=20, tick_lower=-60, tick_upper=60, slippage_bps=50, deadline=1700000000
        )
        result = executor.mint_position(config["pool"], request)
        assert result["tokenId"] == "99"
        assert seen["payload"]["tick_lower"] == -60
        assert seen["payload"]["pool"]["token0"] == config["pool"]["token0"]

    def test_remove_position(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            executor, "_run_ts_script", lambda name, args, **kw: {"success": True, "tokenId": json.loads(args[0])["position_id"]}
        )
        result = executor.remove_position(RemovePositionRequest(position_id="5", slippage_bps=50, deadline=1))
        assert result["tokenId"] == "5"

    def test_list_positions(self, monkeypatch: pytest.MonkeyPatch) -> None:
        listing = [{"tokenId": "3", "token0": "0xa", "token1": "0xb", "fee": 3000}]
        monkeypatch.setattr(executor, "_run_ts_script", lambda name, args, **kw: listing)
        assert executor.list_positions("0xowner") == listing
