"""Demo: push overlapping assignment writes through the queue, then contend for a lock.

Usage:
    python -m asset_sync --actions 6 --debug
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from .config import SyncConfig, configure_logging, load_config
from .exceptions import ActionFailedError, ConfigError
from .lock import LockService, resource_key
from .models import Operation
from .queue import ActionQueue

DEFAULT_ACTIONS = 5
DEMO_LOCK_TIMEOUT = 0.2


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="asset-sync", description="Asset Sync demo")
    parser.add_argument(
        "--actions", type=int, default=DEFAULT_ACTIONS,
        help=f"Number of writes to queue (default: {DEFAULT_ACTIONS})",
    )
    parser.add_argument("--config", help="TOML config file (default: $ASSET_SYNC_CONFIG)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    return parser.parse_args(argv)


def _assignment_write(ledger: list[int], asset_id: int) -> Operation:
    async def write() -> dict[str, int]:
        await asyncio.sleep(0.01)
        if asset_id % 4 == 3:
            raise ValueError(f"asset {asset_id} is already assigned")
        ledger.append(asset_id)
        return {"asset": asset_id, "assignments": len(ledger)}

    return write


async def _demo(actions: int, config: SyncConfig) -> int:
    ledger: list[int] = []
    async with ActionQueue(name="demo") as queue:
        queued = [queue.create_action(_assignment_write(ledger, n)) for n in range(actions)]
        for action in queued:
            queue.submit(action)
        for n, action in enumerate(queued):
            try:
                print(f"write {n}: {await queue.wait(action.id)}")
            except ActionFailedError as e:
                print(f"write {n}: failed ({e.detail})")

    locks = LockService.from_config(config)
    key = resource_key("asset", 1)
    print(f"acquire {key}: {locks.acquire_lock(key, DEMO_LOCK_TIMEOUT)}")
    print(f"acquire {key} again: {locks.acquire_lock(key)}")
    await asyncio.sleep(DEMO_LOCK_TIMEOUT * 1.5)
    print(f"acquire {key} after expiry: {locks.acquire_lock(key)}")
    locks.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    configure_logging("debug" if args.debug else config.log_level, args.log_file or config.log_file)
    return asyncio.run(_demo(args.actions, config))


if __name__ == "__main__":
    sys.exit(main())
