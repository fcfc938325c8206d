"""Headline numbers for the submissions dashboard."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import CustomerForm

NOT_AVAILABLE = "N/A"


@dataclass
class DashboardStats:
    total: int
    today: int
    last_7_days: int
    most_popular: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def form_datetime(form: CustomerForm) -> datetime:
    # Timestamps are nanoseconds since the epoch.
    return datetime.fromtimestamp(form.timestamp / 1_000_000_000)


def most_popular_interest(forms: List[CustomerForm]) -> str:
    counts: Counter = Counter()
    for form in forms:
        for interest in form.insurance_interests:
            counts[getattr(interest, "value", interest)] += 1
    if not counts:
        return NOT_AVAILABLE
    # Ties go to the interest seen first.
    top = sorted(counts.items(), key=lambda item: -item[1])[0][0]
    return top[:1].upper() + top[1:]


def compute_dashboard_stats(forms: List[CustomerForm], now: Optional[datetime] = None) -> DashboardStats:
    now = now or datetime.now()
    today = now.date()
    week_ago = now - timedelta(days=7)

    return DashboardStats(
        total=len(forms),
        today=sum(1 for f in forms if form_datetime(f).date() == today),
        last_7_days=sum(1 for f in forms if form_datetime(f) >= week_ago),
        most_popular=most_popular_interest(forms),
    )
