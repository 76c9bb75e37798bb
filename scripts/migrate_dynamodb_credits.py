#!/usr/bin/env python3
"""
Copy legacy logosCreated/logosLimit counters from AppUsers items into the quota table.

Older accounts kept their counters on the DynamoDB identity item. The quota table
is authoritative now, so this only ever raises a record to the legacy values.
"""
import argparse, sys

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from app import app, db, get_identity_store
from quota import get_credits, get_or_create_credits, set_logo_limit


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Migrate legacy DynamoDB logo counters into the quota table.")
    p.add_argument("--dry-run", action="store_true", help="Show actions; do not commit")
    p.add_argument("--verbose", "-v", action="store_true")
    return p.parse_args(argv)

def scan_legacy_items(table, app_id=None):
    flt = Attr("logosLimit").exists()
    if app_id:
        flt = flt & Attr("AppId").eq(app_id)
    kwargs = {"FilterExpression": flt}
    while True:
        resp = table.scan(**kwargs)
        for item in resp.get("Items", []):
            yield item
        if "LastEvaluatedKey" not in resp:
            break
        kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

def main(argv=None):
    args = parse_args(argv)
    with app.app_context():
        store = get_identity_store()
        migrated = skipped = 0
        try:
            for item in scan_legacy_items(store.table, store.app_id):
                email = (item.get("email") or "").strip().lower()
                if not email:
                    continue
                legacy_created = int(item.get("logosCreated") or 0)
                legacy_limit = int(item.get("logosLimit") or 0)

                acct = get_credits(email) if args.dry_run else get_or_create_credits(email)
                created = max(legacy_created, acct.logos_created if acct else 0)
                limit = max(legacy_limit, acct.logos_limit if acct else 0)
                if acct and (created, limit) == (acct.logos_created, acct.logos_limit):
                    skipped += 1
                    continue

                if args.verbose:
                    print(f"[MIGRATE] {email} -> {created}/{limit}")
                if not args.dry_run:
                    set_logo_limit(acct.id, logos_limit=limit, logos_created=created)
                migrated += 1
        except (ClientError, BotoCoreError) as e:
            print(f"ERROR: DynamoDB scan failed: {e}", file=sys.stderr)
            return 2
        except Exception as e:
            db.session.rollback()
            print(f"ERROR: {e}", file=sys.stderr)
            return 2

    prefix = "Dry-run: would migrate" if args.dry_run else "Migrated"
    print(f"{prefix} {migrated} accounts ({skipped} already up to date).")
    return 0

if __name__ == "__main__":
    sys.exit(main())
