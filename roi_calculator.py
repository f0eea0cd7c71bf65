"""
Pump Advisor: ROI Calculator

Pure energy-economics functions plus the reference tables they draw on
(operating hours, regional tariffs, typical oversizing of installed pumps).
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional

from models import Application, BuildingSize, ROISummary

MAINTENANCE_RATE = 0.02
DEFAULT_LIFECYCLE_YEARS = 10

# ============================================================
# Reference Tables
# ============================================================

OPERATING_HOURS: dict[str, dict[str, int]] = {
    'heating':        {'small': 2000, 'medium': 3500, 'large': 4380},
    'cooling':        {'small': 1500, 'medium': 2000, 'large': 2190},
    'water_supply':   {'small': 2500, 'medium': 4000, 'large': 6000},
    'domestic_water': {'small': 3000, 'medium': 5000, 'large': 7000},
    'wastewater':     {'small': 2000, 'medium': 3500, 'large': 6000},
    'dosing':         {'small': 8760, 'medium': 8760, 'large': 8760},
}

# Used when the building size is unknown
DEFAULT_OPERATING_HOURS: dict[str, int] = {
    'heating': 4380,
    'cooling': 2190,
    'water_supply': 8760,
    'domestic_water': 8760,
    'industrial': 6000,
}
FALLBACK_OPERATING_HOURS = 4380


@dataclass(frozen=True)
class EnergyRate:
    rate: float        # per kWh, local currency
    co2_factor: float  # kg CO2 per kWh
    currency: str


ENERGY_RATES: dict[str, EnergyRate] = {
    'PH': EnergyRate(rate=9.5, co2_factor=0.52, currency='PHP'),
    'US': EnergyRate(rate=0.12, co2_factor=0.42, currency='USD'),
    'EU': EnergyRate(rate=0.25, co2_factor=0.30, currency='EUR'),
    'global': EnergyRate(rate=0.15, co2_factor=0.42, currency='USD'),
}

USD_TO_CURRENCY = {'PHP': 56.0, 'USD': 1.0, 'EUR': 0.92}
CURRENCY_SYMBOLS = {'PHP': '₱', 'USD': '$', 'EUR': '€'}

# How oversized a typical existing installation is, by application and size
OVERSIZING_FACTORS: dict[str, dict[str, float]] = {
    'domestic_water': {'small': 2.0, 'medium': 1.6, 'large': 1.3},
    'water_supply':   {'small': 1.8, 'medium': 1.4, 'large': 1.2},
    'heating':        {'small': 1.6, 'medium': 1.3, 'large': 1.2},
    'cooling':        {'small': 1.5, 'medium': 1.3, 'large': 1.2},
    'wastewater':     {'small': 1.5, 'medium': 1.3, 'large': 1.2},
    'dosing':         {'small': 1.2, 'medium': 1.2, 'large': 1.2},
}
DEFAULT_OVERSIZING_FACTOR = 1.4


def _key(value) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, 'value') else str(value)


def operating_hours(application: Optional[Application | str],
                    size: Optional[BuildingSize | str] = None) -> int:
    app, sz = _key(application), _key(size)
    if app in OPERATING_HOURS and sz in OPERATING_HOURS[app]:
        return OPERATING_HOURS[app][sz]
    return DEFAULT_OPERATING_HOURS.get(app, FALLBACK_OPERATING_HOURS)


def energy_rate(region: str) -> EnergyRate:
    return ENERGY_RATES.get(region, ENERGY_RATES['global'])


def oversizing_factor(application: Optional[Application | str],
                      size: Optional[BuildingSize | str] = None) -> float:
    app, sz = _key(application), _key(size)
    return OVERSIZING_FACTORS.get(app, {}).get(sz, DEFAULT_OVERSIZING_FACTOR)


def usd_to_local(usd: float, currency: str) -> float:
    return usd * USD_TO_CURRENCY.get(currency, 1.0)


def format_local_price(price_range_usd: Optional[str], currency: str) -> Optional[str]:
    """'650-900' USD -> '₱36,400-50,400' for PHP."""
    if not price_range_usd:
        return None
    symbol = CURRENCY_SYMBOLS.get(currency, '')
    parts = []
    for raw in price_range_usd.replace(',', '').split('-'):
        raw = raw.strip()
        try:
            parts.append(f"{usd_to_local(float(raw), currency):,.0f}")
        except ValueError:
            return None
    return symbol + '-'.join(parts) if parts else None


# ============================================================
# Pure Calculations
# ============================================================

def annual_kwh(power_kw: float, hours: float,
               annual_kwh_override: Optional[float] = None) -> float:
    if annual_kwh_override is not None:
        return annual_kwh_override
    return power_kw * hours


def annual_energy_cost(power_kw: float, hours: float, rate: float,
                       annual_kwh_override: Optional[float] = None) -> float:
    return annual_kwh(power_kw, hours, annual_kwh_override) * rate


def annual_savings(old_cost: float, new_cost: float) -> float:
    return old_cost - new_cost


def payback_months(purchase_price: float, savings: float) -> float:
    if savings <= 0:
        return math.inf
    return purchase_price / savings * 12


def co2_reduction_tonnes(old_kwh: float, new_kwh: float, co2_factor: float) -> float:
    return (old_kwh - new_kwh) * co2_factor / 1000


def ten_year_savings(savings: float, purchase_price: float) -> float:
    return savings * 10 - purchase_price


def lifecycle_cost(purchase_price: float, new_annual_cost: float,
                   years: int = DEFAULT_LIFECYCLE_YEARS) -> float:
    return purchase_price + (new_annual_cost + purchase_price * MAINTENANCE_RATE) * years


def efficiency_improvement_pct(old_kwh: float, new_kwh: float) -> float:
    if old_kwh == 0:
        return 0.0
    return (old_kwh - new_kwh) / old_kwh * 100


def roi_summary(
    old_power_kw: float,
    new_power_kw: float,
    purchase_price: float,
    hours: float,
    region: str = 'PH',
    years: int = DEFAULT_LIFECYCLE_YEARS,
    new_annual_kwh: Optional[float] = None,
) -> ROISummary:
    """
    Compare running an existing (old) pump against a replacement.

    purchase_price is in the region's currency. new_annual_kwh, when the
    catalog publishes it, replaces power × hours for the new pump.
    """
    tariff = energy_rate(region)
    old_kwh = annual_kwh(old_power_kw, hours)
    new_kwh = annual_kwh(new_power_kw, hours, new_annual_kwh)
    old_cost = old_kwh * tariff.rate
    new_cost = new_kwh * tariff.rate
    savings = annual_savings(old_cost, new_cost)

    return ROISummary(
        old_annual_cost=old_cost,
        new_annual_cost=new_cost,
        annual_savings=savings,
        payback_months=payback_months(purchase_price, savings),
        co2_reduction_tonnes=co2_reduction_tonnes(old_kwh, new_kwh, tariff.co2_factor),
        ten_year_savings=ten_year_savings(savings, purchase_price),
        lifecycle_cost=lifecycle_cost(purchase_price, new_cost, years),
        efficiency_improvement_pct=efficiency_improvement_pct(old_kwh, new_kwh),
        currency=tariff.currency,
    )


# ============================================================
# Per-Pump Oversizing Model
# ============================================================

def pump_oversize_ratio(max_flow: Optional[float], max_head: Optional[float],
                        flow: float, head: float) -> float:
    ratios = []
    if max_flow and flow > 0:
        ratios.append(max_flow / flow)
    if max_head and head > 0:
        ratios.append(max_head / head)
    return max(ratios) if ratios else 1.0


def duty_point_powers(power_kw: float, ratio: float,
                      app_factor: float) -> tuple[float, float]:
    """
    (old, new) power for a pump judged against its own implied oversizing:
    old = P × min(app_factor, ratio), new = P × max(1/ratio, 0.3).
    """
    old = power_kw * min(app_factor, ratio)
    new = power_kw * max(1 / max(ratio, 1.0), 0.3)
    return old, new


def oversizing_note(flow_ratio: float, head_ratio: float,
                    efficiency_pct: float) -> str:
    if flow_ratio > 3 or head_ratio > 3:
        return ('This pump has far more capacity than the estimated need; '
                'have an engineer confirm the duty point before buying.')
    if efficiency_pct > 30:
        return (f"Right-sizing could cut pumping energy by about "
                f"{efficiency_pct:.0f}% compared with a typically oversized pump.")
    return 'Well matched to the estimated duty point.'
