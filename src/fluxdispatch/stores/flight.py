# src/fluxdispatch/stores/flight.py
"""
Flight destination form: picking a country selects a default city, and the
base price follows the city.

A ``country-update`` payload must reach the stores in the order
country -> city -> price regardless of registration order; the city and
price stores get there through ``wait_for``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from fluxdispatch.stores.store_base import Store

COUNTRY_UPDATE = "country-update"
CITY_UPDATE = "city-update"

DEFAULT_CITIES: Dict[str, str] = {
    "australia": "sydney",
    "france": "paris",
    "japan": "tokyo",
    "thailand": "bangkok",
}

BASE_PRICES: Dict[Tuple[str, str], float] = {
    ("australia", "sydney"): 1200.0,
    ("australia", "melbourne"): 1150.0,
    ("france", "paris"): 640.0,
    ("france", "lyon"): 590.0,
    ("japan", "tokyo"): 980.0,
    ("thailand", "bangkok"): 720.0,
}


def _action_type(payload: Any) -> Optional[str]:
    try:
        return payload.get("action_type")
    except AttributeError:
        return None


class CountryStore(Store):
    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.state["country"] = None

    def on_dispatch(self, payload: Any) -> None:
        if _action_type(payload) == COUNTRY_UPDATE:
            self.state["country"] = payload.get("selected_country")


class CityStore(Store):
    """Depends on ``country``."""

    def __init__(self, *a, default_cities: Optional[Dict[str, str]] = None, **kw):
        super().__init__(*a, **kw)
        self.default_cities = dict(default_cities or DEFAULT_CITIES)
        self.state["city"] = None

    def on_dispatch(self, payload: Any) -> None:
        kind = _action_type(payload)
        if kind == CITY_UPDATE:
            self.state["city"] = payload.get("selected_city")
        elif kind == COUNTRY_UPDATE:
            # country store may not have seen this payload yet
            self.wait_for("country")
            country = self.deps["country"].state["country"]
            self.state["city"] = self.default_cities.get(country)


class FlightPriceStore(Store):
    """Depends on ``country`` and ``city``."""

    def __init__(self, *a, prices: Optional[Dict[Tuple[str, str], float]] = None, **kw):
        super().__init__(*a, **kw)
        self.prices = dict(prices or BASE_PRICES)
        self.state["price"] = None

    def on_dispatch(self, payload: Any) -> None:
        if _action_type(payload) not in (COUNTRY_UPDATE, CITY_UPDATE):
            return
        self.wait_for("city")
        country = self.deps["country"].state["country"]
        city = self.deps["city"].state["city"]
        self.state["price"] = self.prices.get((country, city))
