"""Command-line entry point.

Subcommands:
  add        Register a product
  check      Run one product check now
  check-all  Check every stored product (scheduled job)
  history    Show recent checks for a product
  sweep      Escalate products whose expiry date is near or past (scheduled job)
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from expira.util.config import Config
from expira.util.log import setup_logging
from expira.util.time import parse_timestamp
from expira.util.types import ProductType
from expira.state.store import ProductStore, ProductNotFoundError
from expira.notifications.dispatcher import OutboxDispatcher
from expira.checker.engine import ProductChecker, CheckResponse
from expira.expiration import ExpirationSweeper
from expira.worker import CheckWorker

logger = logging.getLogger(__name__)

STATUS_MARKS = {'active': '✓', 'warning': '!', 'expired': '✗'}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='expira', description='Product expiry and health checks')
    parser.add_argument('--json', action='store_true', help='Print results as JSON')
    sub = parser.add_subparsers(dest='command', required=True)

    add = sub.add_parser('add', help='Register a product')
    add.add_argument('--user', required=True, help='Owning user id')
    add.add_argument('--name', required=True)
    add.add_argument('--url', required=True)
    add.add_argument('--type', choices=[t.value for t in ProductType], default=ProductType.WEBSITE.value)
    add.add_argument('--expires-at', help='Product expiry date (ISO 8601)')
    add.add_argument('--rules', help='Custom field rules as JSON: {"Category": {"ruleKey": value}}')

    check = sub.add_parser('check', help='Check one product now')
    check.add_argument('product_id')

    sub.add_parser('check-all', help='Check every stored product')

    history = sub.add_parser('history', help='Show recent checks for a product')
    history.add_argument('product_id')
    history.add_argument('--limit', type=int, default=None)

    sub.add_parser('sweep', help='Run the product expiry sweep')

    return parser


def _print_check(response: CheckResponse):
    product = response.product
    check = response.check
    mark = STATUS_MARKS.get(product.status.value, '?')
    print(f"{mark} {product.name} [{product.status.value}] {product.url}")
    print(f"  {check.message}")
    if check.response_time is not None:
        print(f"  Response time: {check.response_time}ms")
    if check.error_code:
        print(f"  Error code: {check.error_code}")


async def run_command(args: argparse.Namespace, config: Config) -> int:
    """Execute one parsed subcommand. Returns the process exit code."""
    store = ProductStore(config.db_path)
    dispatcher = OutboxDispatcher(store)

    if args.command == 'add':
        rules = json.loads(args.rules) if args.rules else {}
        if not isinstance(rules, dict):
            raise ValueError("--rules must be a JSON object")
        product = store.add_product(
            user_id=args.user,
            name=args.name,
            url=args.url,
            product_type=ProductType(args.type),
            custom_fields=rules,
            expires_at=parse_timestamp(args.expires_at),
        )
        if args.json:
            print(json.dumps(product.to_dict(), indent=2))
        else:
            print(f"✓ Added {product.name}: {product.id}")
        return 0

    if args.command == 'history':
        store.get_product(args.product_id)
        checks = store.list_checks(args.product_id, limit=args.limit or config.history_limit)
        if args.json:
            print(json.dumps([c.to_dict() for c in checks], indent=2))
        else:
            for c in checks:
                print(f"{c.checked_at.isoformat()}  {c.status.value:<8} {c.message}")
        return 0

    if args.command == 'sweep':
        sweeper = ExpirationSweeper(store, dispatcher, config.expiry_warning_days, config.sms_warning_days)
        results = await sweeper.sweep()
        for r in results:
            if r.changed:
                print(f"{STATUS_MARKS[r.status.value]} {r.product_id}: {r.previous_status.value} -> "
                      f"{r.status.value} ({r.days_until_expiry} days)")
        print(f"Sweep complete: {sum(1 for r in results if r.changed)}/{len(results)} escalated")
        return 0

    checker = ProductChecker(store, dispatcher, config)

    if args.command == 'check':
        response = await checker.check_product(args.product_id)
        if args.json:
            print(json.dumps(response.to_dict(), indent=2))
        else:
            _print_check(response)
        return 0

    worker = CheckWorker(checker, max_workers=config.workers, rate_limit=config.rate_limit)
    summary = await worker.run_all()
    for response in summary.responses:
        _print_check(response)
    for product_id, error in summary.errors.items():
        print(f"✗ {product_id}: {error}")
    print(f"\nChecked {summary.checked_count} products, {summary.error_count} errors")
    return 1 if summary.errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = Config()
        setup_logging(log_file=config.log_file, level=config.log_level)
        return asyncio.run(run_command(args, config))

    except ProductNotFoundError as e:
        print(f"✗ {e}")
        return 1

    except ValueError as e:
        print(f"✗ Invalid input: {e}")
        return 1

    except KeyboardInterrupt:
        print("\n✗ Interrupted by user")
        return 130

    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        print(f"✗ Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
