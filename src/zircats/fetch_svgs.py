#!/usr/bin/env python3
"""
fetch_svgs: Sync ZirCats token SVGs from the chain into MongoDB, and
optionally export everything stored to local .svg files.

Saves to:
  <out>/token-{tokenId}.svg       (reconciled from the contract)
  <out>/published-{id}.svg        (published through the API)

Usage:
    zircats-fetch [--export DIR] [--no-fetch]
"""

import argparse
import asyncio
import sys
from pathlib import Path

from zircats.chain import ChainConnector, load_abi
from zircats.config import Settings, configure_logging, load_settings
from zircats.errors import ZirCatsError
from zircats.reconciler import SvgReconciler
from zircats.store import Store, SvgKind


def svg_filename(record: dict) -> str:
    if record.get("kind") == SvgKind.PUBLISHED.value or "tokenId" not in record:
        return f"published-{record['_id']}.svg"
    return f"token-{record['tokenId']}.svg"


def export_svgs(records: list[dict], out_dir: Path) -> int:
    """Write each record's svg to out_dir. Returns number of files written."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written = 0
    for record in records:
        out_path = out_dir / svg_filename(record)
        if out_path.exists():
            print(f"  {out_path.name}: already exists, skipping")
            continue
        out_path.write_text(record.get("svg", ""), encoding="utf-8")
        print(f"  saved {out_path.name} ({len(record.get('svg', ''))} chars)")
        written += 1
    return written


async def run(args: argparse.Namespace, settings: Settings) -> int:
    store = Store.from_uri(settings.mongodb_uri, settings.database_name)
    connector = ChainConnector(settings.rpc_url, settings.contract_address, load_abi(settings.abi_path))
    status = 0
    try:
        await store.ensure_indexes()

        if not args.no_fetch:
            print(f"Fetching SVGs from {settings.contract_address} via {settings.rpc_url}")
            report = await SvgReconciler(connector, store).reconcile()
            print(f"  {report.summary()}")
            for index, error in sorted(report.failed.items()):
                print(f"  index {index} FAILED: {error}")
            if not report.connected:
                status = 1

        if args.export:
            out_dir = Path(args.export)
            print(f"Exporting stored SVGs to {out_dir}")
            written = export_svgs(await store.list_svgs(), out_dir)
            print(f"Total SVGs saved: {written}")
    except ZirCatsError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        status = 1
    finally:
        await store.close()
    return status


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync ZirCats token SVGs into MongoDB")
    parser.add_argument("--export", metavar="DIR",
                        help="Write every stored SVG into DIR after syncing")
    parser.add_argument("--no-fetch", action="store_true",
                        help="Skip the chain sync (export only)")
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
