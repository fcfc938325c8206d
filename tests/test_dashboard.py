from datetime import datetime, timedelta

import pytest

from src.dashboard.filters import SortOption, filter_and_sort_forms, parse_insurance_filter, parse_sort
from src.dashboard.stats import compute_dashboard_stats, most_popular_interest
from src.integrations.contracts.interfaces import CustomerForm, InsuranceType

NOW = datetime(2024, 6, 15, 12, 0, 0)


def _ns(dt: datetime) -> int:
    return int(dt.timestamp() * 1_000_000_000)


def _form(form_id, name, when, interests, email="x@example.com", phone="9000000000", address=""):
    return CustomerForm(
        id=form_id,
        name=name,
        phone=phone,
        email=email,
        address=address,
        feedback="",
        insurance_interests=interests,
        timestamp=_ns(when),
    )


@pytest.fixture
def forms():
    return [
        _form(1, "Zoya Khan", NOW - timedelta(days=10), [InsuranceType.LIFE]),
        _form(2, "Élan Mehta", NOW - timedelta(hours=2), [InsuranceType.HEALTH, InsuranceType.VEHICLE], address="Pune"),
        _form(3, "arjun Nair", NOW - timedelta(days=3), [InsuranceType.HEALTH], email="arjun@nair.in"),
        _form(4, "Bela Roy", NOW - timedelta(minutes=5), [InsuranceType.TRAVEL], phone="9812345678"),
    ]


def test_parse_sort_aliases_and_fallback():
    assert parse_sort("date") == SortOption.NEWEST
    assert parse_sort("OLDEST") == SortOption.OLDEST
    assert parse_sort("name") == SortOption.NAME
    assert parse_sort("bogus") == SortOption.NEWEST
    assert parse_sort(None) == SortOption.NEWEST


def test_parse_insurance_filter():
    assert parse_insurance_filter("all") is None
    assert parse_insurance_filter("") is None
    assert parse_insurance_filter("personalAccident") == InsuranceType.PERSONAL_ACCIDENT
    with pytest.raises(ValueError):
        parse_insurance_filter("pets")


def test_default_sort_is_newest_first(forms):
    assert [f.id for f in filter_and_sort_forms(forms)] == [4, 2, 3, 1]
    assert [f.id for f in filter_and_sort_forms(forms, sort="oldest")] == [1, 3, 2, 4]


def test_name_sort_ignores_case_and_accents(forms):
    assert [f.name for f in filter_and_sort_forms(forms, sort=SortOption.NAME)] == [
        "arjun Nair",
        "Bela Roy",
        "Élan Mehta",
        "Zoya Khan",
    ]


def test_search_matches_name_email_phone_and_address(forms):
    assert [f.id for f in filter_and_sort_forms(forms, search="NAIR.IN")] == [3]
    assert [f.id for f in filter_and_sort_forms(forms, search="98123")] == [4]
    assert [f.id for f in filter_and_sort_forms(forms, search="pune")] == [2]
    assert filter_and_sort_forms(forms, search="nobody") == []


def test_filter_by_insurance_type_combines_with_search(forms):
    health = filter_and_sort_forms(forms, insurance_type=InsuranceType.HEALTH)
    assert [f.id for f in health] == [2, 3]
    assert [f.id for f in filter_and_sort_forms(forms, search="arjun", insurance_type="health")] == [3]


def test_stats(forms):
    stats = compute_dashboard_stats(forms, now=NOW)

    assert stats.to_dict() == {"total": 4, "today": 2, "last_7_days": 3, "most_popular": "Health"}


def test_stats_for_empty_list():
    stats = compute_dashboard_stats([], now=NOW)
    assert (stats.total, stats.today, stats.last_7_days, stats.most_popular) == (0, 0, 0, "N/A")


def test_most_popular_capitalizes_camel_case_values():
    forms = [_form(1, "A", NOW, [InsuranceType.PERSONAL_ACCIDENT])]
    assert most_popular_interest(forms) == "PersonalAccident"
