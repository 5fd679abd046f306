#!/usr/bin/env python3
"""
Chat Order Submission Script

Replays a chat `#order` message through the order core, the same way the
inbound webhook does, for re-processing messages that failed or arrived
outside the gateway:
- Parses the message (default platform from settings)
- Resolves the marketer from a device id or user id
- Creates the order, books the carrier shipment
- Runs notification and lead bookkeeping inline

Usage:
    python submit_order_message.py message.txt --device-id dev-1
    python submit_order_message.py - --marketer-id <uuid> < message.txt
    python submit_order_message.py message.txt --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import OrderCoreError
from domain.phone import normalize_phone
from repositories.bundle_repository import load_catalog
from repositories.client import get_supabase
from repositories.marketer_repository import find_marketer_by_device, get_marketer
from repositories.store import SupabaseStore
from services.command_parser import ORDER_FORMAT_HINT, ParsedOrder, parse_order_message
from services.messaging import WhatsAppClient
from services.order_service import OrderRequest, OrderService
from services.settings import load_settings
from services.side_effects import InlineDispatcher


def read_message(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def print_parsed(parsed: ParsedOrder) -> None:
    print("=" * 60)
    print("PARSED ORDER")
    print("=" * 60)
    print(f"Name:             {parsed.name}")
    print(f"Phone:            {parsed.phone}")
    print(f"Address:          {parsed.address}, {parsed.postcode} {parsed.city} {parsed.state}".rstrip())
    print(f"Product:          {parsed.product} x{parsed.quantity}")
    print(f"Price:            {'minimum' if not parsed.price else f'RM{parsed.price:.2f}'}")
    print(f"Platform:         {parsed.platform.value}")
    print(f"Payment:          {parsed.payment_method.value}")
    print(f"Closing:          {parsed.closing_channel.value}")
    print("=" * 60)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Create an order from a chat #order message",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Parse only, nothing is written
  python submit_order_message.py message.txt --dry-run

  # Submit for the marketer who owns a chat device
  python submit_order_message.py message.txt --device-id dev-1
        """
    )

    parser.add_argument(
        "message_path",
        help="File holding the message text, or - for stdin"
    )

    owner = parser.add_mutually_exclusive_group()
    owner.add_argument("--device-id", help="Chat device the message was sent to")
    owner.add_argument("--marketer-id", help="User id of the marketer")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and print the order without submitting it"
    )

    args = parser.parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    parsed = parse_order_message(read_message(args.message_path), settings.default_platform)
    if parsed is None:
        print("Not a complete #order message.", file=sys.stderr)
        print(ORDER_FORMAT_HINT, file=sys.stderr)
        return 2

    print_parsed(parsed)
    if args.dry_run:
        return 0

    if not args.device_id and not args.marketer_id:
        print("--device-id or --marketer-id is required unless --dry-run is given", file=sys.stderr)
        return 2

    try:
        store = SupabaseStore(get_supabase())
        if args.device_id:
            marketer = find_marketer_by_device(store, args.device_id)
        else:
            marketer = get_marketer(store, args.marketer_id)
        if marketer is None:
            print("Marketer not found.", file=sys.stderr)
            return 2

        dispatcher = InlineDispatcher(store)
        service = OrderService(
            store,
            load_catalog(store),
            settings,
            messenger=WhatsAppClient(settings),
            dispatcher=dispatcher,
        )
        phone = normalize_phone(parsed.phone, settings.country_code)
        outcome = service.create_order(OrderRequest.from_parsed(parsed, phone=phone), marketer)

    except OrderCoreError as e:
        print(f"\nORDER REJECTED: {e}", file=sys.stderr)
        return 1

    print(f"Order number:     {outcome.order.order_number}")
    print(f"Sale ID:          {outcome.order.sale_id or '-'}")
    print(f"Category:         {outcome.order.customer_category.value}")
    print(f"Tracking:         {outcome.tracking_number or '-'}")
    if outcome.carrier_error:
        print(f"Carrier error:    {outcome.carrier_error}")
    if dispatcher.failed:
        print(f"Failed follow-ups: {', '.join(dispatcher.failed)} (see side_effect_failures)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
