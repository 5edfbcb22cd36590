"""
Utils package for the invitation backend
"""
from .helpers import (
    now_iso,
    product_type_of,
    parse_int,
    as_count,
    pick,
    slugify,
)

__all__ = [
    'now_iso',
    'product_type_of',
    'parse_int',
    'as_count',
    'pick',
    'slugify',
]
