"""
Reference service - detection, validation and fetching of religious-text references.
"""

from .models import ParsedReference, TextResult
from .reference_parser import (
    parse_reference,
    validate_reference,
    normalize_reference,
    detect_references,
    canonical_path
)
from .text_cache import TextCache
from .reference_resolver import ReferenceResolver, get_reference_resolver

__all__ = [
    'ParsedReference',
    'TextResult',
    'parse_reference',
    'validate_reference',
    'normalize_reference',
    'detect_references',
    'canonical_path',
    'TextCache',
    'ReferenceResolver',
    'get_reference_resolver'
]
