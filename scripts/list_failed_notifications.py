#!/usr/bin/env python3
"""
List registration emails that exhausted their retries.

Reads the failed-notifications table written by the webhook and prints one
line per failure. With --resend, rebuilds the registration email from the
recorded purchase name and sends it again.

Usage:
    # Everything recorded
    python scripts/list_failed_notifications.py

    # One buyer, as JSON
    python scripts/list_failed_notifications.py --recipient buyer@example.com --json

    # Show what would be resent
    python scripts/list_failed_notifications.py --resend --dry-run
"""

import argparse
import json
import os
import sys

import boto3
from boto3.dynamodb.conditions import Key

# Add functions directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../functions"))

from shared.catalog import canonical_order, get_catalog  # noqa: E402
from shared.constants import REGISTRATION_KEY_ORDER, SHARED_REGISTRATION_KEY  # noqa: E402
from shared.email_content import REGISTRATION_SUBJECT, build_registration_email  # noqa: E402
from shared.errors import DeliveryError  # noqa: E402
from shared.notifications import NotificationDispatcher, build_transport  # noqa: E402

TABLE_NAME = os.environ.get("FAILED_NOTIFICATIONS_TABLE", "eventpass-failed-notifications")


def load_failures(table, recipient: str | None = None, since: str | None = None) -> list[dict]:
    """All failure items, oldest first."""
    if recipient:
        query_kwargs = {"KeyConditionExpression": Key("pk").eq(recipient)}
        if since:
            query_kwargs["KeyConditionExpression"] &= Key("sk").gte(since)
        read = table.query
        kwargs = query_kwargs
    else:
        read = table.scan
        kwargs = {}

    items = []
    while True:
        response = read(**kwargs)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            break
        kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    if since and not recipient:
        items = [i for i in items if i.get("recorded_at", "") >= since]
    return sorted(items, key=lambda i: i.get("recorded_at", ""))


def registration_keys_for(display_name: str) -> list[str] | None:
    """Registration keys of the catalog item with this display name."""
    catalog = get_catalog()
    for entry in catalog.entries.values():
        if entry.display_name == display_name:
            keys = set(entry.registration_keys) | {SHARED_REGISTRATION_KEY}
            return canonical_order(keys, REGISTRATION_KEY_ORDER)
    return None


def resend(items: list[dict], dry_run: bool) -> tuple[int, int]:
    catalog = get_catalog()
    dispatcher = None if dry_run else NotificationDispatcher(build_transport())
    sent = 0
    skipped = 0

    for item in items:
        recipient = item["pk"]
        display_name = item.get("context", "")
        keys = registration_keys_for(display_name)
        if not keys:
            print(f"  SKIP {recipient}: no catalog item named {display_name!r}")
            skipped += 1
            continue

        if dry_run:
            print(f"  Would resend to {recipient}: {display_name} ({', '.join(keys)})")
            continue

        content = build_registration_email(display_name, keys, catalog, os.environ.get("SUPPORT_FORM_URL", ""))
        try:
            dispatcher.send(recipient, REGISTRATION_SUBJECT, content)
        except DeliveryError as e:
            print(f"  FAILED {recipient}: {e}")
            skipped += 1
            continue
        print(f"  Sent to {recipient}: {display_name}")
        sent += 1

    return sent, skipped


def main():
    parser = argparse.ArgumentParser(description="List failed registration emails")
    parser.add_argument("--recipient", help="Only failures for this address")
    parser.add_argument("--since", help="Only failures recorded at or after this ISO timestamp")
    parser.add_argument("--json", action="store_true", help="Print items as JSON lines")
    parser.add_argument("--resend", action="store_true", help="Rebuild and resend each email")
    parser.add_argument("--dry-run", action="store_true", help="With --resend, show what would be sent")
    args = parser.parse_args()

    table = boto3.resource("dynamodb").Table(TABLE_NAME)
    items = load_failures(table, args.recipient, args.since)

    if not items:
        print("No failed notifications.")
        return

    for item in items:
        if args.json:
            print(json.dumps(item, default=str))
        else:
            print(
                f"{item.get('recorded_at', '?')}  {item['pk']}  "
                f"[{item.get('context') or item.get('subject', '')}]  {item.get('error', '')}"
            )

    print(f"\n{len(items)} failed notification(s)")

    if args.resend:
        if args.dry_run:
            print("\n=== DRY RUN MODE - No emails will be sent ===")
        sent, skipped = resend(items, args.dry_run)
        print(f"\nResent: {sent}, skipped: {skipped}")


if __name__ == "__main__":
    main()
