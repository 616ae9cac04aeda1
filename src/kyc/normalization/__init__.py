"""Normalization helpers that turn raw upstream payloads into canonical fields."""

from .normalizer import (
    extract_income,
    extract_tax_country,
    find_form_value,
    format_address,
    normalize_record,
    resolve_field,
    select_preferred,
)

__all__ = [
    "extract_income",
    "extract_tax_country",
    "find_form_value",
    "format_address",
    "normalize_record",
    "resolve_field",
    "select_preferred",
]
