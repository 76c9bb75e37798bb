# catalog.py
from __future__ import annotations
from typing import TYPE_CHECKING

import logging
import re
from datetime import datetime, timezone
from sqlalchemy import desc, func, or_, select
from sqlalchemy.exc import IntegrityError

CODE_PREFIX = "CAT-"
CODE_RE = re.compile(r"^CAT-(\d{3,})$")

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from app import CatalogLogo

def _models():
    # late import avoids circular import at module import time
    from app import db, CatalogLogo
    return db, CatalogLogo

def _iso_utc(dt: datetime | None) -> str | None:
    if not dt:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")

def format_catalog_code(n: int) -> str:
    return f"{CODE_PREFIX}{n:03d}"

def normalize_catalog_code(code: str | None) -> str | None:
    """Upper-case and validate a user-typed code; None when it is not a catalog code."""
    code = (code or "").strip().upper()
    if not CODE_RE.match(code):
        return None
    return code

def catalog_logo_to_dict(logo: "CatalogLogo", include_image: bool = True) -> dict:
    d = {
        "id": logo.id,
        "catalog_code": logo.catalog_code,
        "logo_key_id": logo.logo_key_id,
        "parameters": logo.parameters or {},
        "original_company_name": logo.original_company_name,
        "created_by": logo.created_by,
        "created_at": _iso_utc(logo.created_at),
    }
    if include_image:
        d["image_data_uri"] = logo.image_data_uri
    return d

def next_catalog_code() -> str:
    db, CatalogLogo = _models()
    codes = db.session.execute(select(CatalogLogo.catalog_code)).scalars().all()
    highest = 0
    for code in codes:
        m = CODE_RE.match(code or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return format_catalog_code(highest + 1)

def add_to_catalog(logo_key_id: str, image_data_uri: str, parameters: dict | None,
                   original_company_name: str, created_by: str, max_retries: int = 3) -> "CatalogLogo":
    db, CatalogLogo = _models()
    if not logo_key_id or not image_data_uri or not original_company_name:
        raise ValueError("logo_key_id, image_data_uri and original_company_name are required")
    if not image_data_uri.startswith("data:image/"):
        raise ValueError("image_data_uri must be a data:image/* URI")

    for attempt in range(max_retries):
        logo = CatalogLogo(
            catalog_code=next_catalog_code(),
            logo_key_id=logo_key_id,
            image_data_uri=image_data_uri,
            parameters=parameters or {},
            original_company_name=original_company_name,
            created_by=created_by,
        )
        db.session.add(logo)
        try:
            db.session.commit()
            logger.info("Added %s to catalog as %s", logo_key_id, logo.catalog_code)
            return logo
        except IntegrityError:
            db.session.rollback()
            # same logo added concurrently: nothing to retry
            if check_logo_in_catalog(logo_key_id):
                raise
            # code collision with a concurrent insert
            if attempt == max_retries - 1:
                raise
            logger.warning("Catalog code collision, retrying (attempt %d)", attempt + 1)

def check_logo_in_catalog(logo_key_id: str) -> "CatalogLogo | None":
    db, CatalogLogo = _models()
    return db.session.execute(
        select(CatalogLogo).where(CatalogLogo.logo_key_id == logo_key_id)
    ).scalars().first()

def get_catalog_logo_by_code(code: str) -> "CatalogLogo | None":
    db, CatalogLogo = _models()
    code = normalize_catalog_code(code)
    if not code:
        return None
    return db.session.execute(
        select(CatalogLogo).where(CatalogLogo.catalog_code == code)
    ).scalars().first()

def _search_filter(CatalogLogo, term: str):
    like = f"%{term}%"
    return or_(CatalogLogo.original_company_name.ilike(like),
               CatalogLogo.catalog_code.ilike(like))

def search_catalog_logos(term: str, limit: int = 100) -> list["CatalogLogo"]:
    db, CatalogLogo = _models()
    term = (term or "").strip()
    if not term:
        return []
    return db.session.execute(
        select(CatalogLogo)
        .where(_search_filter(CatalogLogo, term))
        .order_by(desc(CatalogLogo.created_at), desc(CatalogLogo.id))
        .limit(limit)
    ).scalars().all()

def get_catalog_logos(limit: int | None = None, offset: int | None = None) -> list["CatalogLogo"]:
    db, CatalogLogo = _models()
    q = select(CatalogLogo).order_by(desc(CatalogLogo.created_at), desc(CatalogLogo.id))
    if offset:
        q = q.offset(offset)
    if limit:
        q = q.limit(limit)
    return db.session.execute(q).scalars().all()

def get_catalog_logos_metadata(offset: int = 0, limit: int = 30, search: str = "") -> tuple[list[dict], int]:
    """One page of catalog rows without the image payload, plus the total match count."""
    db, CatalogLogo = _models()
    cols = (CatalogLogo.id, CatalogLogo.catalog_code, CatalogLogo.logo_key_id,
            CatalogLogo.parameters, CatalogLogo.original_company_name,
            CatalogLogo.created_by, CatalogLogo.created_at)
    q = select(*cols)
    count_q = select(func.count(CatalogLogo.id))
    search = (search or "").strip()
    if search:
        q = q.where(_search_filter(CatalogLogo, search))
        count_q = count_q.where(_search_filter(CatalogLogo, search))

    rows = db.session.execute(
        q.order_by(desc(CatalogLogo.created_at), desc(CatalogLogo.id)).offset(offset).limit(limit)
    ).all()
    total = db.session.execute(count_q).scalar() or 0

    logos = [{
        "id": r.id,
        "catalog_code": r.catalog_code,
        "logo_key_id": r.logo_key_id,
        "parameters": r.parameters or {},
        "original_company_name": r.original_company_name,
        "created_by": r.created_by,
        "created_at": _iso_utc(r.created_at),
    } for r in rows]
    return logos, total

def get_catalog_stats() -> dict:
    db, CatalogLogo = _models()
    total, contributors, latest = db.session.execute(
        select(func.count(CatalogLogo.id),
               func.count(func.distinct(CatalogLogo.created_by)),
               func.max(CatalogLogo.created_at))
    ).one()
    return {
        "totalLogos": total or 0,
        "totalContributors": contributors or 0,
        "latestAddition": _iso_utc(latest),
    }

def get_catalog_logo_image(logo_id: int) -> "CatalogLogo | None":
    db, CatalogLogo = _models()
    return db.session.get(CatalogLogo, logo_id)

def delete_catalog_logo(logo_id: int) -> bool:
    db, CatalogLogo = _models()
    logo = db.session.get(CatalogLogo, logo_id)
    if not logo:
        return False
    code = logo.catalog_code
    db.session.delete(logo)
    db.session.commit()
    logger.info("Deleted catalog logo %s (%s)", logo_id, code)
    return True
