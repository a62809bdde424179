"""
Commodity price helpers (data.gov.in mandi prices).

Functions:
- fetch_series(commodity, market, days): daily average modal price for one
  commodity in one market over the last `days` days.
- compare(crop1, market1, crop2, market2): two series side by side.
- district_heatmap(crop): average modal price per Maharashtra district,
  highest first.

Notes:
- data.gov.in reports arrival dates as dd/mm/yyyy; ISO dates are accepted too.
- Records with missing or non-positive prices are ignored.
- Upstream failures raise requests.RequestException; routes map them to 500.
"""

from __future__ import annotations
import math
import os
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from flask import current_app, has_app_context

RESOURCE_ID = "9ef84268-d588-465a-a308-a864a43d0070"
BASE_URL = f"https://api.data.gov.in/resource/{RESOURCE_ID}"
RECORD_LIMIT = 5000
DEFAULT_SERIES_DAYS = 7
_DEFAULT_TIMEOUT = 10

HEATMAP_STATE = "MAHARASHTRA"
MAHARASHTRA_DISTRICTS = frozenset({
    "PUNE", "NASHIK", "AHMEDNAGAR", "KOLHAPUR", "SATARA", "SANGLI",
    "SOLAPUR", "AURANGABAD", "BEED", "JALGAON", "DHULE", "NANDURBAR",
    "NAGPUR", "WARDHA", "AMRAVATI", "YAVATMAL", "AKOLA", "BULDHANA",
    "OSMANABAD", "LATUR", "PARBHANI", "HINGOLI", "RAIGAD", "RATNAGIRI",
    "SINDHUDURG", "MUMBAI", "THANE", "NAVI MUMBAI", "KALYAN", "MUMBAI SUBURBAN",
})


class PriceServiceNotConfigured(RuntimeError):
    """DATA_GOV_API_KEY is missing."""


def _get_api_key() -> str | None:
    key = os.getenv("DATA_GOV_API_KEY")
    if not key and has_app_context():
        key = current_app.config.get("DATA_GOV_API_KEY")
    return key or None


def _timeout() -> int:
    if has_app_context():
        return int(current_app.config.get("DATA_GOV_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT))
    return _DEFAULT_TIMEOUT


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _parse_price(raw: Any) -> Optional[float]:
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(price) or price <= 0:
        return None
    return price


def _parse_arrival_date(raw: Any) -> Optional[date]:
    if not raw:
        return None
    text = str(raw).split("T")[0].strip()
    for fmt in ("%d/%m/%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def fetch_records(filters: Dict[str, str]) -> List[Dict[str, Any]]:
    """
    Query the resource with `filters[<field>]=<VALUE>` parameters.

    Raises:
        PriceServiceNotConfigured: no API key
        requests.RequestException: network or HTTP error
    """
    key = _get_api_key()
    if not key:
        raise PriceServiceNotConfigured("DATA_GOV_API_KEY not configured")

    params = {"api-key": key, "format": "json", "limit": RECORD_LIMIT}
    for field_name, value in filters.items():
        params[f"filters[{field_name}]"] = value.upper()

    r = requests.get(BASE_URL, params=params, timeout=_timeout())
    r.raise_for_status()
    return r.json().get("records") or []


def fetch_series(
    commodity: str,
    market: str,
    days: int = DEFAULT_SERIES_DAYS,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Daily average modal price, oldest first, for dates within the window."""
    end = today or date.today()
    start = end - timedelta(days=days)

    records = fetch_records({"commodity": commodity, "market": market})

    by_date: Dict[date, List[float]] = defaultdict(list)
    for rec in records:
        arrival = _parse_arrival_date(rec.get("arrival_date"))
        if arrival is None or arrival < start or arrival > end:
            continue
        price = _parse_price(rec.get("modal_price"))
        if price is None:
            continue
        by_date[arrival].append(price)

    return [
        {"date": d.isoformat(), "avg_price": _round_half_up(sum(prices) / len(prices))}
        for d, prices in sorted(by_date.items())
    ]


def compare(crop1: str, market1: str, crop2: str, market2: str) -> Dict[str, Any]:
    return {
        "crop1": {"commodity": crop1, "market": market1, "series": fetch_series(crop1, market1)},
        "crop2": {"commodity": crop2, "market": market2, "series": fetch_series(crop2, market2)},
    }


def district_heatmap(crop: Optional[str] = None) -> List[Dict[str, Any]]:
    """Average modal price per known Maharashtra district, highest first."""
    filters = {"state": HEATMAP_STATE}
    if crop:
        filters = {"commodity": crop, **filters}

    totals: Dict[str, List[float]] = defaultdict(list)
    for rec in fetch_records(filters):
        district = (rec.get("district") or "").upper()
        price = _parse_price(rec.get("modal_price"))
        if not district or price is None or district not in MAHARASHTRA_DISTRICTS:
            continue
        totals[district].append(price)

    heat = [
        {"district": d[0] + d[1:].lower(), "avg": _round_half_up(sum(p) / len(p))}
        for d, p in totals.items()
    ]
    heat.sort(key=lambda row: row["avg"], reverse=True)
    return heat
