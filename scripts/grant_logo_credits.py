#!/usr/bin/env python3
"""Add logo credits to quota records (comp credits, support refunds)."""
import argparse, sys

from app import app, db
from quota import add_purchased_credits, get_credits, normalize_email


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Grant extra logo credits to users by email.")

    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--emails", nargs="+", help="List of user emails")
    group.add_argument("--email-file", help="File with one email per line")

    p.add_argument("--credits", type=int, required=True, help="Logos to add to each account's limit")
    p.add_argument("--create-missing", action="store_true",
                   help="Create a quota record for emails that have none")
    p.add_argument("--dry-run", action="store_true", help="Show actions; do not commit")
    p.add_argument("--verbose", "-v", action="store_true")
    return p.parse_args(argv)

def load_emails_from_file(path):
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]

def main(argv=None):
    args = parse_args(argv)
    if args.credits <= 0:
        print("--credits must be positive.", file=sys.stderr)
        return 1

    emails = args.emails or load_emails_from_file(args.email_file)
    emails = list(dict.fromkeys(normalize_email(e) for e in emails if e.strip()))
    if not emails:
        print("No emails provided.", file=sys.stderr)
        return 1

    with app.app_context():
        try:
            granted = 0
            for email in emails:
                acct = get_credits(email)
                if not acct and not args.create_missing:
                    print(f"WARNING: no quota record for {email}", file=sys.stderr)
                    continue
                if args.verbose:
                    before = f"{acct.logos_created}/{acct.logos_limit}" if acct else "none"
                    print(f"[GRANT] {email} +{args.credits} (was {before})")
                if not args.dry_run:
                    add_purchased_credits(email, args.credits)
                granted += 1

            if args.dry_run:
                print(f"Dry-run complete. {granted} accounts would be updated.")
            elif args.verbose:
                print(f"Updated {granted} accounts.")
            return 0
        except Exception as e:
            db.session.rollback()
            print(f"ERROR: {e}", file=sys.stderr)
            return 2

if __name__ == "__main__":
    sys.exit(main())
