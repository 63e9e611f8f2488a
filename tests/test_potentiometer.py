import pytest

from pedalservo.potentiometer import ADC_MAX_VALUE, Potentiometer, adc_to_percent


def test_endpoints():
    assert adc_to_percent(0) == 0
    assert adc_to_percent(ADC_MAX_VALUE) == 100


def test_values_above_range_are_clamped():
    assert adc_to_percent(ADC_MAX_VALUE * 3) == 100


def test_monotonic_and_bounded():
    results = [adc_to_percent(v) for v in range(0, ADC_MAX_VALUE + 1, 7)]
    assert results == sorted(results)
    assert all(0 <= r <= 100 for r in results)


def test_negative_rejected():
    with pytest.raises(ValueError):
        adc_to_percent(-1)


def test_potentiometer_reads_adc_each_time():
    samples = iter([0, ADC_MAX_VALUE])
    pot = Potentiometer(lambda: next(samples))
    assert pot.percentage() == 0
    assert pot.percentage() == 100