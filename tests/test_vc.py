import numpy as np
import pytest

from skill_engine import (
    BASE_OUTCOME_BUCKETS,
    VC_MAX_DEALS,
    VC_MIN_BOTTOM_PROBABILITY,
    ValidationError,
    _number_token,
    simulate_vc_fund,
    tilt_buckets,
)


@pytest.mark.parametrize("tilt", np.linspace(-2, 2, 81))
def test_tilted_probabilities_sum_to_one(tilt):
    buckets = tilt_buckets(tilt)
    assert sum(b.probability for b in buckets) == pytest.approx(1.0, abs=1e-12)
    assert all(b.probability > 0 for b in buckets)
    assert buckets[0].probability >= VC_MIN_BOTTOM_PROBABILITY - 1e-12


def test_zero_tilt_keeps_base_distribution():
    for tilted, base in zip(tilt_buckets(0.0), BASE_OUTCOME_BUCKETS):
        assert tilted.probability == pytest.approx(base.probability)
        assert (tilted.low, tilted.high) == (base.low, base.high)


def test_positive_tilt_moves_mass_to_top_buckets():
    tilted = tilt_buckets(2.0)
    assert tilted[0].probability == pytest.approx(0.45)
    assert tilted[1].probability == pytest.approx(0.25)
    top = sum(b.probability for b in tilted[2:])
    assert top == pytest.approx(0.30)
    base_ratio = BASE_OUTCOME_BUCKETS[2].probability / BASE_OUTCOME_BUCKETS[3].probability
    assert tilted[2].probability / tilted[3].probability == pytest.approx(base_ratio)


def test_negative_tilt_moves_mass_to_bottom():
    tilted = tilt_buckets(-1.0)
    assert tilted[0].probability == pytest.approx(0.60)
    assert sum(b.probability for b in tilted[2:]) == pytest.approx(0.15)


def test_tilt_is_clamped():
    assert tilt_buckets(5.0) == tilt_buckets(2.0)
    assert tilt_buckets(-5.0) == tilt_buckets(-2.0)


def test_single_deal_without_reserve():
    out = simulate_vc_fund("1001", fund_size=100.0, deals=1, reserve_multiplier=0.0)
    assert out.invested_total == 100.0
    assert out.returned_total == 100.0 * out.multiples[0]
    assert out.reserve_pool == 0


@pytest.mark.parametrize("seed", ["1001", "1002", "vc"])
def test_simulation_is_deterministic(seed):
    a = simulate_vc_fund(seed, 100.0, 25, 1.5, 0.5)
    b = simulate_vc_fund(seed, 100.0, 25, 1.5, 0.5)
    assert a == b


def test_run_counter_changes_outcome():
    first = simulate_vc_fund("1001", run=0)
    second = simulate_vc_fund("1001", run=1)
    assert first.multiples != second.multiples
    assert simulate_vc_fund("1001", run=1) == second


@pytest.mark.parametrize("seed", [str(n) for n in range(20)])
def test_fund_accounting(seed):
    out = simulate_vc_fund(seed, fund_size=250.0, deals=30, reserve_multiplier=1.0, skill_tilt=1.0)
    assert out.initial_per_deal == pytest.approx(250.0 / (30 * 2))
    assert out.reserve_pool == pytest.approx(125.0)
    winners = [m for m in out.multiples if m >= 2.0]
    if winners:
        assert out.invested_total == pytest.approx(250.0)
        follow_on = out.reserve_pool / len(winners)
        expected = sum(out.initial_per_deal * m for m in out.multiples)
        expected += sum(follow_on * m for m in winners)
        assert out.returned_total == pytest.approx(expected)
    else:
        assert out.invested_total == pytest.approx(125.0)
    assert out.tvpi == pytest.approx(out.returned_total / out.invested_total)
    assert out.irr == pytest.approx(out.tvpi ** (1 / 10) - 1)
    assert out.hits_10x == sum(1 for m in out.multiples if m >= 10)
    assert out.top_multiple == max(out.multiples)
    assert out.to_frame()['Returned'].sum() == pytest.approx(out.returned_total)


def test_multiples_fall_inside_their_buckets():
    out = simulate_vc_fund("buckets", deals=60, skill_tilt=2.0)
    for deal in out.portfolio:
        bucket = out.buckets[deal.bucket]
        assert bucket.low <= deal.multiple <= bucket.high
        assert deal.multiple == round(deal.multiple, 3)


def test_gates():
    out = simulate_vc_fund("1001")
    assert out.pass_tvpi == (out.tvpi >= 3.0)
    assert out.pass_irr == (out.irr >= 0.25)


def test_fund_size_must_be_positive():
    with pytest.raises(ValidationError):
        simulate_vc_fund("1001", fund_size=0)


@pytest.mark.parametrize("overrides", [
    {"fund_size": float("nan")},
    {"fund_size": float("inf")},
    {"reserve_multiplier": float("inf")},
    {"reserve_multiplier": float("nan")},
    {"skill_tilt": float("nan")},
])
def test_non_finite_inputs_rejected(overrides):
    with pytest.raises(ValidationError):
        simulate_vc_fund("1001", deals=1, **overrides)


def test_deal_count_is_clamped():
    with pytest.warns(UserWarning):
        out = simulate_vc_fund("1001", deals=500)
    assert out.deals == VC_MAX_DEALS
    assert len(out.multiples) == VC_MAX_DEALS
    with pytest.warns(UserWarning):
        assert simulate_vc_fund("1001", deals=0).deals == 1


@pytest.mark.parametrize("value, token", [
    (100.0, "100"), (100, "100"), (1.5, "1.5"), (0.0, "0"), (-0.0, "0"), (-0.3, "-0.3"),
])
def test_number_token(value, token):
    assert _number_token(value) == token
