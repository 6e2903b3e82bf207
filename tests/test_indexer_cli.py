"""Unit tests for scripts/indexer_cli.py."""

from __future__ import annotations

import argparse
from dataclasses import replace
import importlib.util
import json
from pathlib import Path
import runpy
import sys
from typing import Any

import pytest

from indexer.common import WAD
from indexer.config import IndexerConfig
from indexer.diagnostics import RealAssetsReport
from tests.utils.event_payloads import payload
from tests.utils.fake_reader import ASSET, OWNER, VAULT, FakeContractReader
from tests.utils.sqlite_db import SqliteIndexerDB

ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = ROOT / "scripts" / "indexer_cli.py"


def _load_cli_module(module_name: str) -> Any:
    spec = importlib.util.spec_from_file_location(module_name, SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


class _FakeConnection:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class _StubParser:
    def __init__(self, args: argparse.Namespace) -> None:
        self._args = args

    def parse_args(self) -> argparse.Namespace:
        return self._args


class _CountingReader(FakeContractReader):
    @property
    def call_count(self) -> int:
        return len(self.calls)


def _config() -> IndexerConfig:
    return IndexerConfig(
        rpc_url="http://localhost:8545",
        chain_id=1,
        db_dsn=None,
        log_level="INFO",
        rpc_timeout_seconds=1.0,
        rpc_max_retries=1,
        canonical_price_enabled=True,
        force_deallocate_applies_delta=True,
        max_update_retries=3,
    )


def _report(*, complete: bool = True, difference: int = 0) -> RealAssetsReport:
    return RealAssetsReport(
        chain_id=1,
        vault_address=VAULT,
        block_number=9,
        stored_total_assets=100,
        idle_assets=100 + difference,
        adapter_assets={},
        real_assets=100 + difference,
        difference=difference,
        complete=complete,
    )


def _wire(
    cli: Any,
    monkeypatch: pytest.MonkeyPatch,
    args: argparse.Namespace,
    db: SqliteIndexerDB,
    reader: FakeContractReader | None = None,
) -> _FakeConnection:
    conn = _FakeConnection()
    monkeypatch.setattr(cli, "_build_parser", lambda: _StubParser(args))
    monkeypatch.setattr(cli, "_resolve_connection", lambda *_: conn)
    monkeypatch.setattr(cli, "PsycopgIndexerDB", lambda _: db)
    monkeypatch.setattr(cli, "load_indexer_config", _config)
    monkeypatch.setattr(cli, "Web3ContractReader", lambda **_: reader or _CountingReader({"convertToAssets": WAD}))
    return conn


def test_import_path_branch_adds_root_when_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    root = str(ROOT)
    monkeypatch.setattr(sys, "path", [entry for entry in sys.path if entry != root])
    runpy.run_path(str(SCRIPT_PATH), run_name="indexer_cli_import_missing_root")
    assert root in sys.path


def test_import_main_guard_branch_executes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", [str(SCRIPT_PATH), "--help"])
    with pytest.raises(SystemExit) as exc:
        runpy.run_path(str(SCRIPT_PATH), run_name="__main__")
    assert exc.value.code == 0


def test_build_parser_parses_commands() -> None:
    cli = _load_cli_module("indexer_cli_mod_parser")
    parser = cli._build_parser()

    ingest = parser.parse_args(["--dsn", "postgresql://x", "ingest", "--events-file", "events.jsonl"])
    assert ingest.command == "ingest"
    assert ingest.events_file == Path("events.jsonl")

    vault = parser.parse_args(["vault-state", "--chain-id", "1", "--vault", "AA" * 20, "--timestamp", "5"])
    assert vault.vault == "0x" + "aa" * 20

    identifier = parser.parse_args(
        ["identifier-state", "--chain-id", "1", "--vault", VAULT, "--identifier", "0xAB", "--timestamp", "5"]
    )
    assert identifier.identifier == "0xab"

    with pytest.raises(SystemExit):
        parser.parse_args(["snapshot", "--chain-id", "1", "--vault", VAULT])


def test_resolve_connection_reports_missing_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    cli = _load_cli_module("indexer_cli_mod_resolve")
    for key in ("INDEXER_DB_DSN", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"):
        monkeypatch.delenv(key, raising=False)
    args = argparse.Namespace(dsn=None, host=None, port=None, dbname=None, user=None, password=None)

    with pytest.raises(SystemExit, match="Missing DB connection settings"):
        cli._resolve_connection(args, None)


def test_iter_event_payloads_skips_blank_lines_and_defaults_chain(tmp_path: Path) -> None:
    cli = _load_cli_module("indexer_cli_mod_iter")
    events_file = tmp_path / "events.jsonl"
    first = payload("SetName", {"newName": "x"}, block=1)
    del first["chain_id"]
    second = payload("SetName", {"newName": "y"}, block=2, chain_id=10)
    events_file.write_text(f"{json.dumps(first)}\n\n{json.dumps(second)}\n", encoding="utf-8")

    loaded = list(cli._iter_event_payloads(events_file, 1))
    assert [item["chain_id"] for item in loaded] == [1, 10]

    events_file.write_text("{not json}\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="line 1"):
        list(cli._iter_event_payloads(events_file, 1))


def test_main_ingest_then_query_vault_state(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    sqlite_db: SqliteIndexerDB,
) -> None:
    cli = _load_cli_module("indexer_cli_mod_ingest")
    events_file = tmp_path / "events.jsonl"
    deposit = payload("Deposit", {"sender": OWNER, "onBehalf": OWNER, "assets": 100, "shares": 100}, block=2)
    lines = [
        payload("Constructor", {"owner": OWNER, "asset": ASSET}, block=1),
        deposit,
        deposit,
    ]
    events_file.write_text("\n".join(json.dumps(line) for line in lines), encoding="utf-8")

    conn = _wire(cli, monkeypatch, argparse.Namespace(command="ingest", events_file=events_file), sqlite_db)
    assert cli.main() == 0
    summary = json.loads(capsys.readouterr().out.strip())
    assert summary == {"applied": 2, "duplicates": 1, "rpc_calls": 1}
    assert conn.closed is True

    query = argparse.Namespace(command="vault-state", chain_id=1, vault=VAULT, timestamp=deposit["block_timestamp"])
    _wire(cli, monkeypatch, query, sqlite_db)
    assert cli.main() == 0
    checkpoint = json.loads(capsys.readouterr().out.strip())
    assert checkpoint["total_assets"] == 100

    snapshot = argparse.Namespace(command="snapshot", chain_id=1, vault=VAULT, block=1)
    _wire(cli, monkeypatch, snapshot, sqlite_db)
    assert cli.main() == 1
    assert capsys.readouterr().out.strip() == "null"


def test_main_identifier_state_missing_returns_one(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    sqlite_db: SqliteIndexerDB,
) -> None:
    cli = _load_cli_module("indexer_cli_mod_identifier")
    args = argparse.Namespace(
        command="identifier-state", chain_id=1, vault=VAULT, identifier="0x" + "11" * 32, timestamp=10**10
    )
    _wire(cli, monkeypatch, args, sqlite_db)

    assert cli.main() == 1
    assert capsys.readouterr().out.strip() == "null"


@pytest.mark.parametrize(("complete", "difference", "expected_code"), [(True, 0, 0), (True, 5, 2), (False, 0, 2)])
def test_main_reconcile_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    sqlite_db: SqliteIndexerDB,
    complete: bool,
    difference: int,
    expected_code: int,
) -> None:
    cli = _load_cli_module(f"indexer_cli_mod_reconcile_{complete}_{difference}")
    args = argparse.Namespace(command="reconcile", vault=VAULT, block=9)
    conn = _wire(cli, monkeypatch, args, sqlite_db)
    monkeypatch.setattr(cli, "reconcile_real_assets", lambda *_: _report(complete=complete, difference=difference))

    assert cli.main() == expected_code
    assert json.loads(capsys.readouterr().out.strip())["difference"] == difference
    assert conn.closed is True


def test_main_closes_connection_on_failure(monkeypatch: pytest.MonkeyPatch, sqlite_db: SqliteIndexerDB) -> None:
    cli = _load_cli_module("indexer_cli_mod_failure")
    args = argparse.Namespace(command="reconcile", vault=VAULT, block=9)
    conn = _wire(cli, monkeypatch, args, sqlite_db)

    with pytest.raises(Exception, match="vault_v2 row missing"):
        cli.main()
    assert conn.closed is True


def test_main_chain_commands_use_configured_dsn_and_log_level(
    monkeypatch: pytest.MonkeyPatch,
    sqlite_db: SqliteIndexerDB,
) -> None:
    cli = _load_cli_module("indexer_cli_mod_configured")
    args = argparse.Namespace(command="reconcile", vault=VAULT, block=9)
    _wire(cli, monkeypatch, args, sqlite_db)
    configured = replace(_config(), db_dsn="postgresql://indexer@db/vaults", log_level="DEBUG")
    monkeypatch.setattr(cli, "load_indexer_config", lambda: configured)

    seen: dict[str, Any] = {}
    conn = _FakeConnection()

    def _resolve(_args: argparse.Namespace, default_dsn: str | None) -> _FakeConnection:
        seen["dsn"] = default_dsn
        return conn

    monkeypatch.setattr(cli, "_resolve_connection", _resolve)
    monkeypatch.setattr(cli, "_configure_logging", lambda level: seen.setdefault("level", level))
    monkeypatch.setattr(cli, "reconcile_real_assets", lambda *_: _report())

    assert cli.main() == 0
    assert seen == {"dsn": "postgresql://indexer@db/vaults", "level": "DEBUG"}
    assert conn.closed is True


def test_main_read_commands_skip_chain_config(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    sqlite_db: SqliteIndexerDB,
) -> None:
    cli = _load_cli_module("indexer_cli_mod_read_only")
    args = argparse.Namespace(command="snapshot", chain_id=1, vault=VAULT, block=1)
    _wire(cli, monkeypatch, args, sqlite_db)
    monkeypatch.setenv("INDEXER_DB_DSN", " postgresql://reader@db/vaults ")
    monkeypatch.setenv("INDEXER_LOG_LEVEL", "warning")

    def _no_config() -> IndexerConfig:
        raise AssertionError("read commands must not require RPC settings")

    seen: dict[str, Any] = {}
    monkeypatch.setattr(cli, "load_indexer_config", _no_config)

    def _resolve(_args: argparse.Namespace, default_dsn: str | None) -> _FakeConnection:
        seen["dsn"] = default_dsn
        return _FakeConnection()

    monkeypatch.setattr(cli, "_resolve_connection", _resolve)
    monkeypatch.setattr(cli, "_configure_logging", lambda level: seen.setdefault("level", level))

    assert cli.main() == 1
    assert capsys.readouterr().out.strip() == "null"
    assert seen == {"dsn": "postgresql://reader@db/vaults", "level": "WARNING"}
