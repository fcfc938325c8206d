"""
Search, filter and sort for the submissions dashboard.

Everything here is pure and works on the in-memory list returned by
`get_all_forms`; the list is small enough to recompute per request.
"""

from __future__ import annotations

import unicodedata
from enum import Enum
from typing import List, Optional, Union

from src.integrations.contracts.interfaces import CustomerForm, InsuranceType

ALL_TYPES = "all"


class SortOption(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    NAME = "name"


def parse_sort(value: Optional[str]) -> SortOption:
    """Map a query-string value to a sort option. `date` is an alias for newest."""
    raw = (value or SortOption.NEWEST.value).strip().lower()
    if raw == "date":
        return SortOption.NEWEST
    try:
        return SortOption(raw)
    except ValueError:
        return SortOption.NEWEST


def parse_insurance_filter(value: Optional[str]) -> Optional[InsuranceType]:
    """`None`/`all` disables the filter; anything else must be an InsuranceType value."""
    raw = (value or "").strip()
    if not raw or raw.lower() == ALL_TYPES:
        return None
    return InsuranceType(raw)


def name_sort_key(name: str) -> str:
    """Accent- and case-insensitive collation key."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def matches_search(form: CustomerForm, term: str) -> bool:
    needle = (term or "").strip().lower()
    if not needle:
        return True
    haystacks = (form.name, form.email, form.phone, form.address)
    return any(needle in (value or "").lower() for value in haystacks)


def filter_and_sort_forms(
    forms: List[CustomerForm],
    search: str = "",
    insurance_type: Union[InsuranceType, str, None] = None,
    sort: Union[SortOption, str, None] = SortOption.NEWEST,
) -> List[CustomerForm]:
    wanted = parse_insurance_filter(insurance_type.value if isinstance(insurance_type, InsuranceType) else insurance_type)
    sort_option = sort if isinstance(sort, SortOption) else parse_sort(sort)

    result = [
        form
        for form in forms
        if matches_search(form, search) and (wanted is None or wanted in form.insurance_interests)
    ]

    if sort_option == SortOption.NAME:
        result.sort(key=lambda f: name_sort_key(f.name))
    elif sort_option == SortOption.OLDEST:
        result.sort(key=lambda f: f.timestamp)
    else:
        result.sort(key=lambda f: f.timestamp, reverse=True)
    return result
