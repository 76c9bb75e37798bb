# quota.py
from __future__ import annotations  # postpone annotation evaluation
from typing import TYPE_CHECKING

from datetime import datetime
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError

DEFAULT_LOGO_LIMIT = 5                  # free logos for a new account
SUPERUSER_LOGO_LIMIT = 999999

if TYPE_CHECKING:
    # For editors only; never runs at runtime
    from app import CreditAccount

def _models():
    # late import avoids circular import at module import time
    from app import db, CreditAccount, SubAppCredits
    return db, CreditAccount, SubAppCredits

def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()

def usage_dict(logos_created: int, logos_limit: int) -> dict:
    created = int(logos_created or 0)
    limit = int(logos_limit or 0)
    return {
        "logosCreated": created,
        "logosLimit": limit,
        "remainingLogos": max(0, limit - created),
    }

def get_credits(email: str) -> "CreditAccount | None":
    db, CreditAccount, _ = _models()
    return db.session.execute(
        select(CreditAccount).where(CreditAccount.email == normalize_email(email))
    ).scalars().first()

def get_credits_by_id(account_id: int) -> "CreditAccount | None":
    db, CreditAccount, _ = _models()
    return db.session.get(CreditAccount, account_id)

def get_initial_logo_credits(sub_app_id: str | None) -> int:
    """Free logos granted on registration for a given sub-app (falls back to the default)."""
    if not sub_app_id:
        return DEFAULT_LOGO_LIMIT
    db, _, SubAppCredits = _models()
    row = db.session.get(SubAppCredits, str(sub_app_id))
    if row is None or row.logo_credits is None:
        return DEFAULT_LOGO_LIMIT
    return int(row.logo_credits)

def get_or_create_credits(email: str, logos_limit: int | None = None, max_retries: int = 3) -> "CreditAccount":
    db, CreditAccount, _ = _models()
    email = normalize_email(email)
    if not email:
        raise ValueError("email required")

    for attempt in range(max_retries):
        try:
            # Fast path: already exists
            acct = get_credits(email)
            if acct:
                return acct

            acct = CreditAccount(
                email=email,
                logos_created=0,
                logos_limit=DEFAULT_LOGO_LIMIT if logos_limit is None else int(logos_limit),
            )
            db.session.add(acct)
            db.session.commit()
            return acct

        except IntegrityError:
            # Most likely: another request inserted the row first
            db.session.rollback()
            acct = get_credits(email)
            if acct:
                return acct
            raise

        except OperationalError:
            db.session.rollback()
            if attempt < max_retries - 1:
                continue
            raise

def consume_logo_or_deny(account_id: int) -> bool:
    """Atomically take one logo credit. False when the account is exhausted."""
    db, CreditAccount, _ = _models()
    result = db.session.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account_id)
        .where(CreditAccount.logos_created < CreditAccount.logos_limit)
        .values({
            CreditAccount.logos_created: CreditAccount.logos_created + 1,
            CreditAccount.updated_at: datetime.utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1

def record_logo_created(account_id: int) -> None:
    # superusers: count without enforcing the limit
    db, CreditAccount, _ = _models()
    db.session.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account_id)
        .values({
            CreditAccount.logos_created: CreditAccount.logos_created + 1,
            CreditAccount.updated_at: datetime.utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

def refund_logo(account_id: int) -> None:
    db, CreditAccount, _ = _models()
    db.session.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account_id)
        .where(CreditAccount.logos_created > 0)
        .values({
            CreditAccount.logos_created: CreditAccount.logos_created - 1,
            CreditAccount.updated_at: datetime.utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

def add_purchased_credits(email: str, quantity: int) -> "CreditAccount":
    db, CreditAccount, _ = _models()
    quantity = int(quantity)
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    email = normalize_email(email)

    result = db.session.execute(
        update(CreditAccount)
        .where(CreditAccount.email == email)
        .values({
            CreditAccount.logos_limit: CreditAccount.logos_limit + quantity,
            CreditAccount.updated_at: datetime.utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount == 0:
        # no quota record yet: the purchase becomes the whole allowance
        return get_or_create_credits(email, logos_limit=quantity)

    return get_credits(email)

def reset_for_registration(email: str, logos_limit: int) -> "CreditAccount":
    db, CreditAccount, _ = _models()
    acct = get_or_create_credits(email, logos_limit=logos_limit)
    acct.logos_created = 0
    acct.logos_limit = int(logos_limit)
    acct.updated_at = datetime.utcnow()
    db.session.commit()
    return acct

def set_logo_limit(account_id: int, logos_limit: int | None = None,
                   subscription_type: str | None = None,
                   logos_created: int | None = None) -> "CreditAccount":
    db, CreditAccount, _ = _models()
    acct = db.session.get(CreditAccount, account_id)
    if acct is None:
        raise LookupError("credit account not found")
    if logos_limit is not None:
        if int(logos_limit) < 0:
            raise ValueError("logosLimit must be >= 0")
        acct.logos_limit = int(logos_limit)
    if logos_created is not None:
        if int(logos_created) < 0:
            raise ValueError("logosCreated must be >= 0")
        acct.logos_created = int(logos_created)
    if subscription_type is not None:
        acct.subscription_type = subscription_type
    acct.updated_at = datetime.utcnow()
    db.session.commit()
    return acct

def delete_credits(email: str) -> bool:
    db, CreditAccount, _ = _models()
    acct = get_credits(email)
    if not acct:
        return False
    db.session.delete(acct)
    db.session.commit()
    return True
