"""Potentiometer reading as a percentage of a 12-bit ADC range."""

from __future__ import annotations

from typing import Callable

ADC_MAX_VALUE = 4095


def adc_to_percent(value: int) -> int:
    """Convert a raw ADC sample to a whole percentage clamped to 0..100."""
    if value < 0:
        raise ValueError("ADC value must not be negative")
    return max(0, min(100, (value * 100) // ADC_MAX_VALUE))


class Potentiometer:
    """A potentiometer sampled through a single ADC conversion."""

    def __init__(self, read_adc: Callable[[], int]) -> None:
        self._read_adc = read_adc

    def percentage(self) -> int:
        return adc_to_percent(self._read_adc())