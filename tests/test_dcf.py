import math

import numpy as np
import pytest

from skill_engine import (
    DCF_YEARS,
    ENTER_A_NUMBER,
    ValidationError,
    check_guess,
    compute_dcf,
    dcf_sensitivity,
    generate_dcf_case,
    relative_error,
    round_half_away,
)


SEEDS = ["1001", "1002", "alpha", "Case 7", "", "ZZZ-999"]


def test_case_1001_is_reproducible():
    first = generate_dcf_case("1001")
    second = generate_dcf_case("1001")
    assert first == second
    assert first.revenue_base == second.revenue_base
    assert first.ebit_margin == second.ebit_margin
    assert first.wacc == second.wacc
    assert compute_dcf(first).per_share == compute_dcf(second).per_share


def test_case_1001_known_draws():
    case = generate_dcf_case("1001")
    assert case.company == "Northland Foods plc"
    assert case.revenue_base == 6326


@pytest.mark.parametrize("seed", SEEDS)
def test_generated_ranges(seed):
    case = generate_dcf_case(seed)
    assert 3000 <= case.revenue_base <= 8000
    assert 0.10 <= case.ebit_margin <= 0.25
    assert 0.07 <= case.wacc <= 0.10
    assert 0.02 <= case.terminal_growth <= 0.03
    assert 800 <= case.shares <= 1800
    assert len(case.growth_path) == DCF_YEARS
    assert case.growth_path[0] == case.growth_start
    assert case.growth_path[-1] == pytest.approx(case.growth_end)


@pytest.mark.parametrize("seed", SEEDS)
def test_revenue_is_rounded_before_reuse(seed):
    case = generate_dcf_case(seed)
    result = compute_dcf(case)
    prev = case.revenue_base
    for year, growth in zip(result.years, case.growth_path):
        assert year.revenue == int(round_half_away(prev * (1 + growth)))
        assert year.delta_nwc == pytest.approx((year.revenue - prev) * case.nwc_pct)
        assert isinstance(year.fcf, int)
        prev = year.revenue


@pytest.mark.parametrize("seed", SEEDS)
def test_valuation_bridge(seed):
    case = generate_dcf_case(seed)
    result = compute_dcf(case)
    fcf5 = result.fcf[-1]
    tv = fcf5 * (1 + case.terminal_growth) / (case.wacc - case.terminal_growth)
    assert result.terminal_value == pytest.approx(tv)
    pv = sum(f / (1 + case.wacc) ** t for t, f in enumerate(result.fcf, start=1))
    pv += tv / (1 + case.wacc) ** DCF_YEARS
    assert result.enterprise_value == int(round_half_away(pv))
    assert result.equity_value == result.enterprise_value - case.net_debt
    assert result.per_share == pytest.approx(result.equity_value / case.shares)


def test_overrides_leave_case_untouched():
    case = generate_dcf_case("1001")
    base = compute_dcf(case)
    higher = compute_dcf(case, wacc=case.wacc + 0.02)
    assert higher.per_share < base.per_share
    assert compute_dcf(case) == base


@pytest.mark.parametrize("wacc, g", [(0.03, 0.03), (0.02, 0.03)])
def test_wacc_not_above_growth_is_rejected(wacc, g):
    case = generate_dcf_case("1001")
    with pytest.raises(ValidationError):
        compute_dcf(case, wacc=wacc, terminal_growth=g)


def test_sensitivity_flags_degenerate_cells():
    case = generate_dcf_case("1001")
    table = dcf_sensitivity(case, wacc_values=[0.02, 0.08], growth_values=[0.02, 0.03])
    assert np.isnan(table.loc[0.02, 0.02])
    assert np.isnan(table.loc[0.02, 0.03])
    assert table.loc[0.08, 0.02] == pytest.approx(
        compute_dcf(case, wacc=0.08, terminal_growth=0.02).per_share
    )


def test_default_sensitivity_centre_matches_base():
    case = generate_dcf_case("1001")
    table = dcf_sensitivity(case)
    assert table.shape == (5, 3)
    assert table.iloc[2, 1] == pytest.approx(compute_dcf(case).per_share)


def test_to_frame_columns():
    frame = compute_dcf(generate_dcf_case("1001")).to_frame()
    assert list(frame['Year']) == [1, 2, 3, 4, 5]
    assert 'FCF' in frame.columns


class TestGuessCheck:
    solution = 12.5

    def test_exact_guess_is_correct(self):
        feedback = check_guess(str(self.solution), self.solution)
        assert feedback.correct
        assert feedback.relative_error == 0

    def test_band_edges(self):
        assert check_guess(str(self.solution * 1.049), self.solution).correct
        assert check_guess(str(self.solution * 0.951), self.solution).correct
        assert not check_guess(str(self.solution * 1.051), self.solution).correct
        assert not check_guess(str(self.solution * 0.949), self.solution).correct

    def test_error_grows_with_distance(self):
        errors = [relative_error(self.solution + d, self.solution) for d in (0, 0.1, 0.5, 1, 5)]
        assert errors == sorted(errors)

    def test_floor_of_one_near_zero(self):
        assert relative_error(0.04, 0.0) == pytest.approx(0.04)
        assert check_guess("0.04", 0.0).correct

    @pytest.mark.parametrize("text", ["", "abc", "12..5", None, "nan", "inf"])
    def test_non_numeric_guess_prompts(self, text):
        feedback = check_guess(text, self.solution)
        assert not feedback.correct
        assert feedback.relative_error is None
        assert feedback.message == ENTER_A_NUMBER

    def test_currency_text_is_accepted(self):
        assert check_guess("£12.50", self.solution).correct
        assert check_guess(" 12.50 ", self.solution).correct

    def test_miss_reports_error(self):
        feedback = check_guess("25", self.solution)
        assert not feedback.correct
        assert math.isclose(feedback.relative_error, 1.0)
        assert "100.0%" in feedback.message
