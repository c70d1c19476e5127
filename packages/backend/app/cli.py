"""Operator commands for vault key provisioning and rotation.

    python -m app.cli generate-key
    python -m app.cli rotate-key --old-key <hex> --new-key <hex>
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from app.core.logging_config import configure_logging
from app.security.cipher import ConfigurationError, generate_key, parse_key_hex
from app.services.key_rotation import DEFAULT_BATCH_SIZE, KeyRotationReport, rotate_vault_encryption_key


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app.cli", description="Canvas Vault operator tools")
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("generate-key", help="Print a new 64-character hex VAULT_ENCRYPTION_KEY")

    rotate = subcommands.add_parser("rotate-key", help="Re-encrypt all vault items under a new key")
    rotate.add_argument("--old-key", required=True, help="Current VAULT_ENCRYPTION_KEY (64 hex characters)")
    rotate.add_argument("--new-key", required=True, help="Replacement key (64 hex characters)")
    rotate.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    return parser


async def _rotate(old_key: bytes, new_key: bytes, batch_size: int) -> KeyRotationReport:
    from app.db.session import SessionLocal, engine

    try:
        async with SessionLocal() as session:
            return await rotate_vault_encryption_key(
                session,
                old_key=old_key,
                new_key=new_key,
                batch_size=batch_size,
            )
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate-key":
        print(generate_key())
        return 0

    configure_logging()
    try:
        old_key = parse_key_hex(args.old_key)
        new_key = parse_key_hex(args.new_key)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if old_key == new_key:
        print("error: --old-key and --new-key must differ", file=sys.stderr)
        return 2

    report = asyncio.run(_rotate(old_key, new_key, args.batch_size))
    print(f"rotated={report.rotated} already_rotated={report.already_rotated} failed={report.failed}")
    for item_id in report.failed_item_ids:
        print(f"unreadable item: {item_id}", file=sys.stderr)
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
