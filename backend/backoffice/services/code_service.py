# Overview: Slug and short-code generation for tenant and vendor entities.

"""
Code Generator

UNIQUENESS RULES:
- Vendor, VendorCompany, Client and Company codes share one 4-character
  code space (codes are globally unique across all four tables)
- Site codes are unique within their company
- Reserved codes are never issued

ALGORITHM (4-character codes):
1. Base = name stripped of non-alphanumerics, uppercased, truncated to 4,
   padded with random letters when shorter
2. Base taken -> first two base characters + two-digit suffix 01..99
3. All suffixes taken -> random 4-character alphanumeric code

Codes are computed from a snapshot of existing codes. Callers insert them
under a unique column and regenerate on IntegrityError (see
concurrency.run_with_retry), so two concurrent creations cannot both keep
the same code.
"""

from __future__ import annotations

import random
import re
import string

from ..extensions import db
from ..errors import ConflictError
from ..models import Client, Company, Site, Vendor, VendorCompany


CODE_LENGTH = 4
MAX_SUFFIX_ATTEMPTS = 99
MAX_RANDOM_ATTEMPTS = 1000

RESERVED_CODES = frozenset({"0000", "AAAA", "TEST", "DEMO", "NULL", "NONE", "XXXX", "ZZZZ"})

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")

_ALPHABET = string.ascii_uppercase
_ALPHANUMERIC = string.ascii_uppercase + string.digits


def slugify(name: str) -> str:
    """
    Lowercase, collapse non-[a-z0-9] runs to one hyphen, strip edge hyphens.

    "Acme & Sons, Inc." -> "acme-sons-inc"
    """
    return _NON_SLUG.sub("-", (name or "").lower()).strip("-")


def derive_code_base(name: str, rng: random.Random | None = None) -> str:
    rng = rng or random
    base = _NON_ALNUM.sub("", name or "").upper()[:CODE_LENGTH]
    while len(base) < CODE_LENGTH:
        base += rng.choice(_ALPHABET)
    return base


def generate_code(name: str, taken: set[str], rng: random.Random | None = None) -> str:
    """Pick a code for name that is neither taken nor reserved."""
    rng = rng or random
    unavailable = set(taken) | RESERVED_CODES

    base = derive_code_base(name, rng)
    if base not in unavailable:
        return base

    prefix = base[:2]
    for n in range(1, MAX_SUFFIX_ATTEMPTS + 1):
        candidate = f"{prefix}{n:02d}"
        if candidate not in unavailable:
            return candidate

    for _ in range(MAX_RANDOM_ATTEMPTS):
        candidate = "".join(rng.choice(_ALPHANUMERIC) for _ in range(CODE_LENGTH))
        if candidate not in unavailable:
            return candidate

    raise ConflictError("Unable to allocate a unique code")


def existing_entity_codes() -> set[str]:
    """Snapshot of the shared code space (vendors, clients, companies, vendor companies)."""
    codes: set[str] = set()
    for model in (Vendor, Client, Company, VendorCompany):
        codes.update(code for (code,) in db.session.query(model.code).all() if code)
    return codes


def generate_entity_code(name: str) -> str:
    return generate_code(name, existing_entity_codes())


def generate_company_code(name: str, client_id: int) -> str:
    """Company code from the shared code space (unique across all clients)."""
    return generate_entity_code(name)


def generate_site_code(name: str, company_id: int) -> str:
    taken = {
        code for (code,) in db.session.query(Site.code).filter(Site.company_id == company_id).all()
    }
    return generate_code(name, taken)
