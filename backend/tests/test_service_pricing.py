import math
import random

import pytest

from transcribefree.models.upload import DurationEstimate, DurationSource
from transcribefree.services import pricing


def test_cost_is_never_below_minimum():
    for minutes in [0, 0.01, 0.5, 1, 2.7]:
        assert pricing.calculate_cost(minutes) >= 0.50


def test_cost_is_monotonic():
    previous = 0.0
    for step in range(0, 3000):
        cost = pricing.calculate_cost(step / 100)
        assert cost >= previous
        previous = cost


def test_billing_rounds_up_to_tenth_of_minute():
    assert pricing.billable_minutes(2.01) == pytest.approx(2.1)
    assert pricing.calculate_cost(2.01) == pytest.approx(0.38)


def test_exact_tenths_are_not_bumped():
    assert pricing.billable_minutes(0.3) == pytest.approx(0.3)
    assert pricing.billable_minutes(2.1) == pytest.approx(2.1)


def test_forty_minutes_costs_seven_twenty():
    assert pricing.calculate_cost(40) == pytest.approx(7.20)


def test_five_second_clip_pays_minimum_charge():
    estimate = DurationEstimate(minutes=1, seconds=5.0, source=DurationSource.PROBE)
    assert pricing.cost_for_estimate(estimate) == pytest.approx(0.50)


def test_heuristic_estimate_bills_whole_minutes():
    estimate = DurationEstimate(minutes=40, source=DurationSource.HEURISTIC)
    assert pricing.cost_for_estimate(estimate) == pytest.approx(7.20)


@pytest.mark.parametrize("bad", [-1, -0.001, math.nan, None])
def test_invalid_durations_raise(bad):
    with pytest.raises(ValueError):
        pricing.calculate_cost(bad)


def test_custom_rate_and_minimum():
    assert pricing.calculate_cost(10, rate=0.25, minimum=1.0) == pytest.approx(2.5)
    assert pricing.calculate_cost(1, rate=0.25, minimum=1.0) == pytest.approx(1.0)


class _FixedUniform(random.Random):
    def uniform(self, a, b):
        return 60.0


def test_processing_eta_for_audio():
    assert pricing.estimate_processing_eta(10, "audio/mpeg", 1024, rng=_FixedUniform()) == 360


def test_processing_eta_for_large_video():
    size = 200 * 1024 * 1024
    eta = pricing.estimate_processing_eta(10, "video/mp4", size, rng=_FixedUniform())
    assert eta == round(10 * 30 * 1.2 * 1.1 + 60)


def test_processing_eta_variance_range():
    rng = random.Random(7)
    for _ in range(50):
        eta = pricing.estimate_processing_eta(1, "audio/mpeg", 1024, rng=rng)
        assert 60 <= eta <= 120


@pytest.mark.parametrize("seconds,category", [(30, "quick"), (60, "quick"), (120, "medium"), (600, "long"), (601, "very_long")])
def test_eta_category(seconds, category):
    assert pricing.eta_category(seconds)["category"] == category
