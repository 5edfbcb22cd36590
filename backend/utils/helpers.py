"""
Utility helper functions for the invitation backend
"""
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


# ============ Time ============

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============ Invitation Types ============

def product_type_of(invitation_type: Optional[str]) -> str:
    """Product type is the invitation_type prefix before ':' ("email:classic" -> "email")"""
    return (invitation_type or "").strip().lower().split(":")[0]


def parse_int(value: Any) -> Optional[int]:
    """Leading-integer parse of metadata strings; None when there are no digits"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = re.match(r'^\s*([+-]?\d+)', str(value or ""))
    return int(match.group(1)) if match else None


def as_count(value: Any) -> int:
    """Coerce a stored counter to a non-negative int"""
    n = parse_int(value)
    return n if n and n > 0 else 0


# ============ Dict Utilities ============

def pick(data: dict, allowed: Iterable[str]) -> dict:
    """Copy only the allowed keys that are present in data"""
    return {key: data[key] for key in allowed if key in data}


# ============ Text ============

def slugify(text: str) -> str:
    s = re.sub(r'\s+', '-', (text or "").strip().lower())
    return re.sub(r'[^a-z0-9\-_.]', '', s)
