#!/usr/bin/env python3
"""Vault indexer CLI: event ingestion, point-in-time reads and reconciliation."""

from __future__ import annotations

import argparse
from dataclasses import asdict
import json
import logging
from pathlib import Path
import sys
from typing import Any, Iterator, Optional

import psycopg

# Ensure repository root is importable when script is executed by path.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from indexer.chain_reader import Web3ContractReader
from indexer.checkpoints import identifier_state_at, vault_state_at
from indexer.common import normalize_address, normalize_hex
from indexer.config import load_indexer_config, read_db_dsn, read_log_level
from indexer.database import PsycopgIndexerDB, connect
from indexer.diagnostics import reconcile_real_assets
from indexer.dispatcher import STATUS_APPLIED, VaultEventDispatcher
from indexer.events import decode_event
from indexer.historical_snapshot import snapshot_at_block
from indexer.vault_state import VaultStateProjector

logger = logging.getLogger(__name__)

_CHAIN_COMMANDS: frozenset[str] = frozenset({"ingest", "reconcile"})


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_connection(args: argparse.Namespace, default_dsn: Optional[str]) -> psycopg.Connection[Any]:
    dsn = args.dsn or default_dsn
    try:
        return connect(
            dsn,
            host=args.host,
            port=args.port,
            dbname=args.dbname,
            user=args.user,
            password=args.password,
        )
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc


def _iter_event_payloads(path: Path, default_chain_id: int) -> Iterator[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            stripped = line.strip()
            if not stripped:
                continue
            try:
                payload = json.loads(stripped)
            except json.JSONDecodeError as exc:
                raise SystemExit(f"Invalid JSON on line {line_number} of {path}: {exc}") from exc
            payload.setdefault("chain_id", default_chain_id)
            yield payload


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def _print(payload: Any) -> None:
    print(json.dumps(payload, sort_keys=True, default=_json_default))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vault state indexer CLI")
    parser.add_argument("--dsn", help="PostgreSQL DSN (optional, defaults to INDEXER_DB_DSN)")
    parser.add_argument("--host", help="DB host")
    parser.add_argument("--port", help="DB port")
    parser.add_argument("--dbname", help="DB name")
    parser.add_argument("--user", help="DB user")
    parser.add_argument("--password", help="DB password")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_cmd = subparsers.add_parser("ingest", help="Apply decoded events from a JSON-lines file in order")
    ingest_cmd.add_argument("--events-file", required=True, type=Path)

    vault_cmd = subparsers.add_parser("vault-state", help="Vault checkpoint as of a timestamp")
    vault_cmd.add_argument("--chain-id", required=True, type=int)
    vault_cmd.add_argument("--vault", required=True, type=normalize_address)
    vault_cmd.add_argument("--timestamp", required=True, type=int)

    identifier_cmd = subparsers.add_parser("identifier-state", help="Identifier checkpoint as of a timestamp")
    identifier_cmd.add_argument("--chain-id", required=True, type=int)
    identifier_cmd.add_argument("--vault", required=True, type=normalize_address)
    identifier_cmd.add_argument("--identifier", required=True, type=normalize_hex)
    identifier_cmd.add_argument("--timestamp", required=True, type=int)

    snapshot_cmd = subparsers.add_parser("snapshot", help="Full historical snapshot as of a block")
    snapshot_cmd.add_argument("--chain-id", required=True, type=int)
    snapshot_cmd.add_argument("--vault", required=True, type=normalize_address)
    snapshot_cmd.add_argument("--block", required=True, type=int)

    reconcile_cmd = subparsers.add_parser("reconcile", help="Compare stored total assets with on-chain real assets")
    reconcile_cmd.add_argument("--vault", required=True, type=normalize_address)
    reconcile_cmd.add_argument("--block", required=True, type=int)

    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    # Only chain-reading commands need the RPC settings.
    config = load_indexer_config() if args.command in _CHAIN_COMMANDS else None
    if config is None:
        _configure_logging(read_log_level())
        conn = _resolve_connection(args, read_db_dsn())
    else:
        _configure_logging(config.log_level)
        conn = _resolve_connection(args, config.db_dsn)
    db = PsycopgIndexerDB(conn)

    try:
        if args.command == "ingest":
            assert config is not None
            reader = Web3ContractReader(
                rpc_url=config.rpc_url,
                timeout_seconds=config.rpc_timeout_seconds,
                max_retries=config.rpc_max_retries,
            )
            dispatcher = VaultEventDispatcher.from_config(db, reader, config)
            applied = 0
            duplicates = 0
            for payload in _iter_event_payloads(args.events_file, config.chain_id):
                result = dispatcher.dispatch(decode_event(payload))
                if result.status == STATUS_APPLIED:
                    applied += 1
                else:
                    duplicates += 1
            _print({"applied": applied, "duplicates": duplicates, "rpc_calls": reader.call_count})
            return 0

        if args.command == "vault-state":
            checkpoint = vault_state_at(db, args.chain_id, args.vault, args.timestamp)
            _print(None if checkpoint is None else asdict(checkpoint))
            return 0 if checkpoint is not None else 1

        if args.command == "identifier-state":
            cap_checkpoint = identifier_state_at(db, args.chain_id, args.vault, args.identifier, args.timestamp)
            _print(None if cap_checkpoint is None else asdict(cap_checkpoint))
            return 0 if cap_checkpoint is not None else 1

        if args.command == "snapshot":
            snapshot = snapshot_at_block(db, args.chain_id, args.vault, args.block)
            _print(None if snapshot is None else asdict(snapshot))
            return 0 if snapshot is not None else 1

        assert config is not None
        reader = Web3ContractReader(
            rpc_url=config.rpc_url,
            timeout_seconds=config.rpc_timeout_seconds,
            max_retries=config.rpc_max_retries,
        )
        report = reconcile_real_assets(
            VaultStateProjector(db, max_update_retries=config.max_update_retries),
            reader,
            config.chain_id,
            args.vault,
            args.block,
        )
        _print(asdict(report))
        return 0 if report.complete and report.difference == 0 else 2
    finally:
        conn.close()


if __name__ == "__main__":
    raise SystemExit(main())
