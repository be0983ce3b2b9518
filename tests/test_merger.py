import pytest

from skill_engine import (
    ValidationError,
    compute_merger,
    generate_merger_case,
)


SEEDS = ["1001", "1002", "1003", "merger", "", "x" * 20]
MIXES = [(0.4, 0.4), (1.0, 0.0), (0.0, 1.0), (0.0, 0.0), (0.3, 0.5), (0.25, 0.25)]


def test_generated_case():
    case = generate_merger_case("1001")
    assert case == generate_merger_case("1001")
    assert 0.22 <= case.tax_rate <= 0.27
    assert 12 <= case.acquirer_pe <= 22
    assert 14 <= case.offer_pe <= 22
    assert 50 <= case.base_synergy <= 300
    assert case.acquirer_price == case.acquirer_eps * case.acquirer_pe


def test_defaults_follow_case():
    case = generate_merger_case("1001")
    out = compute_merger(case)
    assert out.stock_pct == 0.4
    assert out.debt_pct == 0.4
    assert out.cash_pct == pytest.approx(0.2)
    assert out.synergy == case.base_synergy


def test_accretion_arithmetic():
    case = generate_merger_case("1002")
    out = compute_merger(case, 0.5, 0.3, synergy=120.0)
    equity_value = case.target_eps * case.offer_pe * case.target_shares
    assert out.equity_value == pytest.approx(equity_value)
    assert out.new_shares == pytest.approx(equity_value * 0.5 / case.acquirer_price)
    interest = equity_value * 0.3 * case.cost_of_debt * (1 - case.tax_rate)
    assert out.after_tax_interest == pytest.approx(interest)
    assert out.after_tax_synergies == pytest.approx(120.0 * (1 - case.tax_rate))
    ni = (case.acquirer_eps * case.acquirer_shares + case.target_eps * case.target_shares
          + 120.0 * (1 - case.tax_rate) - interest)
    assert out.pro_forma_net_income == pytest.approx(ni)
    assert out.pro_forma_eps == pytest.approx(ni / (case.acquirer_shares + out.new_shares))
    assert out.accretion == pytest.approx(out.pro_forma_eps / case.acquirer_eps - 1)


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("stock_pct, debt_pct", MIXES)
def test_breakeven_synergy_gives_zero_accretion(seed, stock_pct, debt_pct):
    case = generate_merger_case(seed)
    breakeven = compute_merger(case, stock_pct, debt_pct).breakeven_synergy
    out = compute_merger(case, stock_pct, debt_pct, synergy=breakeven)
    assert out.cash_pct + out.stock_pct + out.debt_pct == pytest.approx(1.0)
    if breakeven > 0:
        assert out.accretion == pytest.approx(0.0, abs=1e-12)
    else:
        assert out.accretion >= -1e-12


@pytest.mark.parametrize("seed", SEEDS)
def test_label_follows_sign(seed):
    case = generate_merger_case(seed)
    breakeven = compute_merger(case, 0.4, 0.4).breakeven_synergy
    above = compute_merger(case, 0.4, 0.4, synergy=breakeven + 50)
    assert above.accretive and above.label == "Accretive"
    if breakeven > 50:
        below = compute_merger(case, 0.4, 0.4, synergy=breakeven - 50)
        assert not below.accretive and below.label == "Dilutive"


def test_all_cash_deal_adds_no_shares_or_interest():
    case = generate_merger_case("1001")
    out = compute_merger(case, 0.0, 0.0, synergy=0.0)
    assert out.cash_pct == 1.0
    assert out.new_shares == 0
    assert out.after_tax_interest == 0
    assert out.pro_forma_shares == case.acquirer_shares


def test_over_allocated_mix_caps_debt():
    case = generate_merger_case("1001")
    with pytest.warns(UserWarning):
        out = compute_merger(case, 0.7, 0.5)
    assert out.debt_pct == pytest.approx(0.3)
    assert out.cash_pct == pytest.approx(0.0, abs=1e-12)


def test_bad_acquirer_rejected():
    from dataclasses import replace
    case = replace(generate_merger_case("1001"), acquirer_eps=0.0)
    with pytest.raises(ValidationError):
        compute_merger(case)
