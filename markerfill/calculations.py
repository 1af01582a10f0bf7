"""
Consumption Calculator
======================
Derives hourly and per-second water consumption from a daily figure.

    hourly   = multiplier × daily / 24
    secondly = hourly / divisor

Results are rounded half-up to ``precision`` decimals; the secondly value is
computed from the rounded hourly value.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel

from .models import CalculationOptions

MAX_DAILY_CONSUMPTION = 10000


class ConsumptionResult(BaseModel):
    daily: float
    hourly: float
    secondly: float
    options: CalculationOptions


def round_half_up(value: float, precision: int = 2) -> float:
    quantum = Decimal(1).scaleb(-precision)
    # str() keeps the shortest repr, so 16.335 rounds like the decimal it shows.
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def options_from_env() -> CalculationOptions:
    """Calculation parameters from HOURLY_MULTIPLIER / SECONDLY_DIVISOR / CALCULATION_PRECISION."""
    defaults = CalculationOptions()
    return CalculationOptions(
        hourly_multiplier=_env_float("HOURLY_MULTIPLIER", defaults.hourly_multiplier),
        secondly_divisor=_env_float("SECONDLY_DIVISOR", defaults.secondly_divisor),
        precision=int(_env_float("CALCULATION_PRECISION", defaults.precision)),
    )


def calculate_consumption(
    daily: float, options: Optional[CalculationOptions] = None
) -> ConsumptionResult:
    """
    Compute hourly and secondly consumption.

    Raises:
        ValueError: If ``daily`` is not a finite, non-negative number.
    """
    options = options or CalculationOptions()
    if isinstance(daily, bool) or not isinstance(daily, (int, float)):
        raise ValueError("daily consumption must be a number")
    if math.isnan(daily) or math.isinf(daily):
        raise ValueError("daily consumption must be finite")
    if daily < 0:
        raise ValueError("daily consumption cannot be negative")

    precision = options.precision
    hourly = round_half_up(options.hourly_multiplier * daily / 24, precision)
    secondly = round_half_up(hourly / options.secondly_divisor, precision)
    return ConsumptionResult(
        daily=round_half_up(daily, precision),
        hourly=hourly,
        secondly=secondly,
        options=options,
    )


def validate_calculation_data(data) -> list[str]:
    """Request-level checks; returns a list of error messages."""
    if not isinstance(data, Mapping):
        return ["data must be an object"]

    daily = data.get("dailyConsumption")
    if daily is None:
        return ["dailyConsumption is required"]
    if isinstance(daily, bool) or not isinstance(daily, (int, float)) or math.isnan(daily):
        return ["dailyConsumption must be a number"]
    if daily < 0:
        return ["dailyConsumption cannot be negative"]
    if daily > MAX_DAILY_CONSUMPTION:
        return [f"dailyConsumption is too large (max {MAX_DAILY_CONSUMPTION})"]
    return []


def derive_field_values(
    values: Mapping[str, object], options: CalculationOptions
) -> dict[str, object]:
    """
    Add ``max_hourly`` and ``msr_secondly`` computed from ``msr_daily``.
    Values already supplied by the caller are kept.
    """
    result = dict(values)
    daily = _as_number(values.get("msr_daily"))
    if daily is None or not math.isfinite(daily) or daily < 0:
        return result

    calc = calculate_consumption(daily, options)
    if result.get("max_hourly") is None:
        result["max_hourly"] = calc.hourly
    if result.get("msr_secondly") is None:
        result["msr_secondly"] = calc.secondly
    return result


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return None
    return None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default
