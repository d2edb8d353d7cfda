import re
import secrets
from datetime import datetime
from typing import Iterable

from bson import ObjectId

PROPERTY_ID_START = 1000


def new_object_id() -> str:
    return str(ObjectId())


def property_code(seq: int) -> str:
    return f"PROP{PROPERTY_ID_START + seq}"


def room_code(property_id: str, seq: int) -> str:
    return f"{property_id}-R{seq}"


def bed_code(room_id: str, seq: int) -> str:
    return f"{room_id}-B{seq}"


def highest_sequence(existing_ids: Iterable[str], prefix: str) -> int:
    """Largest trailing number among ids of the form ``{prefix}{n}``."""
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for existing in existing_ids:
        match = pattern.match(existing or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def tenant_code() -> str:
    return f"TENANT-{secrets.token_hex(4).upper()}"


def local_tenant_code(landlord_id: str) -> str:
    return f"L-{landlord_id[-6:]}-{secrets.randbelow(10000):04d}"


def bill_number(issued_at: datetime) -> str:
    return f"BILL-{issued_at:%Y%m}-{secrets.token_hex(3).upper()}"


def short_code(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(4).upper()}"
