"""
Finance Skill Simulator
=======================

Practice tool for deal and fund maths. Five seeded exercises:
DCF, LBO, M&A EPS accretion/dilution, hedge fund long/short and a
VC power-law fund. Change the Case ID for a new company; the same Case ID
always reproduces the same case and solution.

Run locally: streamlit run app.py
"""

from dataclasses import asdict

import streamlit as st
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from skill_engine import (
    DEFAULT_SEED,
    HF_MAX_ABS_NET,
    HF_MAX_GROSS,
    HF_MIN_SHARPE,
    HF_WEIGHT_LIMIT,
    VC_MAX_DEALS,
    VC_MIN_IRR,
    VC_MIN_TVPI,
    SimulatorState,
    ValidationError,
    check_guess,
    compute_dcf,
    compute_lbo,
    compute_merger,
    compute_portfolio,
    dcf_sensitivity,
    format_currency,
    format_multiple,
    format_number,
    format_percentage,
    run_case_regression_checks,
    simulate_vc_fund,
)


# Presentation-side bounds; the engines clamp again on their own.
LBO_DEBT_RANGE = (0.40, 0.80)
LBO_ENTRY_RANGE = (6.0, 14.0)
LBO_EXIT_SPREAD = 2.0
LBO_GROWTH_RANGE = (0.03, 0.12)
LBO_CAPEX_RANGE = (0.15, 0.40)
VC_MIN_DEALS = 5

MODULE_LABELS = {
    "📈 1. DCF": "DCF",
    "🏗️ 2. LBO": "LBO",
    "🤝 3. M&A EPS": "M&A",
    "⚖️ 4. Hedge Fund L/S": "HF",
    "🚀 5. VC Power-Law": "VC",
}


def _get_state() -> SimulatorState:
    if 'sim_state' not in st.session_state:
        st.session_state.sim_state = SimulatorState()
    return st.session_state.sim_state


def _set_state(state: SimulatorState) -> None:
    st.session_state.sim_state = state


def _override(value, default):
    return default if value is None else value


def _gate(passed: bool, ok_text: str, fail_text: str) -> None:
    if passed:
        st.success(ok_text)
    else:
        st.error(fail_text)


# =============================================================================
# MODULE 1: DCF
# =============================================================================

def dcf_module(state: SimulatorState) -> SimulatorState:
    """Guess the fair value per share of a seeded five-year DCF."""
    case = state.case()
    st.header(f"📈 DCF: {case.company}")
    st.caption(
        f"Last Rev: {format_currency(case.revenue_base)}m · "
        f"EBIT margin {format_percentage(case.ebit_margin)} · "
        f"Tax {format_percentage(case.tax_rate)} · "
        f"WACC {format_percentage(case.wacc)} · g {format_percentage(case.terminal_growth)} · "
        f"Net debt {format_currency(case.net_debt)}m · Shares {format_number(case.shares, 0)}m"
    )

    with st.expander("📘 Case assumptions", expanded=False):
        st.markdown(f"""
        * Revenue growth falls linearly from **{format_percentage(case.growth_start)}** in year 1
          to **{format_percentage(case.growth_end)}** in year 5
        * D&A {format_percentage(case.da_pct)}, Capex {format_percentage(case.capex_pct)},
          NWC {format_percentage(case.nwc_pct)} of revenue
        * Round revenue and FCF to whole £m each year
        """)

    try:
        result = compute_dcf(case)
    except ValidationError as e:
        st.error(f"❌ {e}")
        return state

    guess = st.text_input("Fair Value / Share (£)", value=state.dcf_guess,
                          placeholder="e.g. 6.42", key=f"dcf_guess_{state.seed}")
    state = state.with_guess(guess)

    if st.button("✅ Check", key="dcf_check"):
        feedback = check_guess(guess, result.per_share)
        if feedback.relative_error is None:
            st.warning(feedback.message)
        elif feedback.correct:
            st.success(feedback.message)
        else:
            st.error(feedback.message)

    with st.expander("📝 Show solution"):
        st.write("FCF Y1–Y5: " + ", ".join(format_currency(x) + "m" for x in result.fcf))
        st.write(
            f"TV: {format_currency(result.terminal_value)}m · "
            f"EV: {format_currency(result.enterprise_value)}m · "
            f"Equity: {format_currency(result.equity_value)}m"
        )
        st.markdown(f"**Per share: £{result.per_share:.2f}**")
        st.dataframe(result.to_frame().round(2), use_container_width=True)

        st.markdown("**Per-share value across WACC (rows) and g (columns)**")
        st.dataframe(dcf_sensitivity(case).round(2), use_container_width=True)

    return state


# =============================================================================
# MODULE 2: LBO
# =============================================================================

def lbo_module(state: SimulatorState) -> SimulatorState:
    """Five-year LBO with adjustable leverage, multiples, growth and capex."""
    case = state.case()
    inputs = state.lbo
    st.header(f"🏗️ LBO: {case.company}")
    st.caption(
        f"EBITDA {format_currency(case.ebitda_base)}m · Rate {format_percentage(case.interest_rate)} · "
        f"Tax {format_percentage(case.tax_rate)} · D&A {format_percentage(case.da_pct)} · "
        f"ΔNWC {format_percentage(case.nwc_pct)} of EBITDA"
    )

    key = state.seed
    col1, col2 = st.columns(2)
    with col1:
        entry = st.slider("Entry Multiple", *LBO_ENTRY_RANGE, step=0.05,
                          value=float(np.clip(_override(inputs.entry_multiple, case.entry_multiple),
                                              *LBO_ENTRY_RANGE)),
                          key=f"lbo_entry_{key}")
        debt_pct = st.slider("Debt %", *LBO_DEBT_RANGE, step=0.01,
                             value=float(np.clip(_override(inputs.debt_pct, case.debt_pct), *LBO_DEBT_RANGE)),
                             key=f"lbo_debt_{key}")
        exit_low = case.entry_multiple - LBO_EXIT_SPREAD
        exit_high = case.entry_multiple + LBO_EXIT_SPREAD
        exit_mult = st.slider("Exit Multiple", exit_low, exit_high, step=0.05,
                              value=float(np.clip(_override(inputs.exit_multiple, case.exit_multiple),
                                                  exit_low, exit_high)),
                              key=f"lbo_exit_{key}")
    with col2:
        growth = st.slider("EBITDA CAGR", *LBO_GROWTH_RANGE, step=0.001,
                           value=float(np.clip(_override(inputs.growth, case.growth), *LBO_GROWTH_RANGE)),
                           key=f"lbo_growth_{key}")
        capex_pct = st.slider("Capex % EBITDA", *LBO_CAPEX_RANGE, step=0.005,
                              value=float(np.clip(_override(inputs.capex_pct, case.capex_pct), *LBO_CAPEX_RANGE)),
                              key=f"lbo_capex_{key}")

    state = state.with_lbo(entry_multiple=entry, exit_multiple=exit_mult,
                           debt_pct=debt_pct, growth=growth, capex_pct=capex_pct)
    try:
        out = compute_lbo(case, **asdict(state.lbo))
    except ValidationError as e:
        st.error(f"❌ {e}")
        return state

    c1, c2, c3 = st.columns(3)
    c1.metric("Entry EV", f"{format_currency(out.entry_ev)}m")
    c1.metric("Exit EV", f"{format_currency(out.exit_ev)}m")
    c2.metric("Debt₀", f"{format_currency(out.debt0)}m")
    c2.metric("Equity₀", f"{format_currency(out.equity0)}m")
    c3.metric("MOIC", format_multiple(out.moic))
    c3.metric("IRR", format_percentage(out.irr))
    st.write(f"Equity at exit: {format_currency(out.exit_equity)}m")

    with st.expander("📝 Year-by-year"):
        for y in out.schedule:
            st.write(
                f"Y{y.year}: EBITDA {format_currency(y.ebitda)}m · "
                f"FCF {format_currency(y.fcf)}m · Debt End {format_currency(y.debt_end)}m"
            )
        st.dataframe(out.to_frame().round(1), use_container_width=True)

    return state


# =============================================================================
# MODULE 3: M&A ACCRETION / DILUTION
# =============================================================================

def merger_module(state: SimulatorState) -> SimulatorState:
    """EPS accretion/dilution for a seeded acquirer/target pair."""
    case = state.case()
    inputs = state.merger
    st.header("🤝 M&A: EPS Accretion/Dilution")
    st.caption(
        f"Acquirer: {case.acquirer} · Target: {case.target} · "
        f"Offer P/E: {case.offer_pe:.1f}x · Equity Value: {format_currency(case.offer_equity_value)}m"
    )

    key = state.seed
    col1, col2 = st.columns(2)
    with col1:
        stock_pct = st.slider("Stock %", 0.0, 1.0, value=float(inputs.stock_pct),
                              step=0.01, key=f"mna_stock_{key}")
        debt_cap = round(1.0 - stock_pct, 2)
        if debt_cap > 0:
            debt_pct = st.slider("Debt %", 0.0, debt_cap, value=float(min(inputs.debt_pct, debt_cap)),
                                 step=0.01, key=f"mna_debt_{key}_{debt_cap}")
        else:
            debt_pct = 0.0
            st.caption("All-stock deal: no room for debt")
        st.caption(f"Cash % = {format_percentage(max(0.0, 1 - stock_pct - debt_pct))}")
    with col2:
        synergy = st.number_input(
            "Pre-tax Synergies (£m/yr)",
            value=float(case.base_synergy if inputs.synergy is None else inputs.synergy),
            step=5.0, key=f"mna_syn_{key}",
        )

    state = state.with_merger(stock_pct=stock_pct, debt_pct=debt_pct, synergy=synergy)
    try:
        out = compute_merger(case, stock_pct, debt_pct, synergy)
    except ValidationError as e:
        st.error(f"❌ {e}")
        return state

    c1, c2, c3 = st.columns(3)
    c1.metric("Standalone EPS", f"£{case.acquirer_eps:.2f}")
    c2.metric("Pro-forma EPS", f"£{out.pro_forma_eps:.2f}", f"{out.accretion * 100:.2f}%")
    c3.metric("New Shares", f"{format_number(out.new_shares, 1)}m")
    _gate(out.accretive, "Accretive ✓", "Dilutive")
    st.info(f"Breakeven synergy ≈ {format_currency(out.breakeven_synergy)}m")

    with st.expander("📝 Bridge"):
        st.dataframe(pd.DataFrame({
            'Item': ["Acquirer NI", "Target NI", "After-tax synergies",
                     "After-tax interest", "Pro-forma NI", "Pro-forma shares"],
            '£m': [case.acquirer_net_income, case.target_net_income, out.after_tax_synergies,
                   -out.after_tax_interest, out.pro_forma_net_income, out.pro_forma_shares],
        }).round(2), use_container_width=True)

    return state


# =============================================================================
# MODULE 4: HEDGE FUND LONG/SHORT
# =============================================================================

def hedge_fund_module(state: SimulatorState) -> SimulatorState:
    """Build a long/short book against gross, net and ratio gates."""
    universe = state.case()
    st.header("⚖️ Hedge Fund: Long/Short Sandbox")
    st.info(
        f"🧠 Keep gross ≤ {HF_MAX_GROSS:.0f}%, |net| ≤ {HF_MAX_ABS_NET:.0f}% and "
        f"return/vol ≥ {HF_MIN_SHARPE}. Positions are treated as independent."
    )

    for i, inst in enumerate(universe):
        c1, c2, c3, c4 = st.columns([1, 1, 1, 2])
        c1.markdown(f"**{inst.ticker}**")
        c2.write(f"μ {format_percentage(inst.mu)}")
        c3.write(f"σ {format_percentage(inst.sigma)}")
        w = c4.number_input("Weight %", min_value=-HF_WEIGHT_LIMIT, max_value=HF_WEIGHT_LIMIT,
                            value=float(state.hf_weights[i]), step=5.0,
                            key=f"hf_w_{state.seed}_{inst.ticker}", label_visibility="collapsed")
        state = state.with_weight(i, w)

    try:
        out = compute_portfolio(universe, state.hf_weights)
    except ValidationError as e:
        st.error(f"❌ {e}")
        return state

    st.write(
        f"Gross: {out.gross:.0f}% · Net: {out.net:.0f}% · "
        f"Exp. Return: {out.expected_return * 100:.2f}% · "
        f"Exp. Vol: {out.volatility * 100:.2f}% · Sharpe: {out.sharpe:.2f}"
    )
    c1, c2, c3 = st.columns(3)
    with c1:
        _gate(out.pass_gross, "Gross ✓", f"Gross > {HF_MAX_GROSS:.0f}%")
    with c2:
        _gate(out.pass_net, "Net ✓", "Net out of range")
    with c3:
        _gate(out.pass_sharpe, "Sharpe ✓", f"Sharpe < {HF_MIN_SHARPE}")

    with st.expander("📝 Contributions"):
        st.dataframe(out.contributions.round(4), use_container_width=True)

    return state


# =============================================================================
# MODULE 5: VC POWER-LAW FUND
# =============================================================================

def vc_module(state: SimulatorState) -> SimulatorState:
    """Simulate a seeded venture fund under a bucketed power-law model."""
    inputs = state.vc
    st.header("🚀 VC: Power-Law Fund")

    col1, col2 = st.columns(2)
    with col1:
        fund_size = st.number_input("Fund Size (£m)", min_value=1.0,
                                    value=float(inputs.fund_size), step=10.0, key="vc_fund")
        deals = st.number_input("Number of Initial Deals", min_value=VC_MIN_DEALS,
                                max_value=VC_MAX_DEALS, value=int(inputs.deals), step=1, key="vc_deals")
    with col2:
        reserve = st.slider("Reserves Multiplier (× initial)", 0.0, 2.5,
                            value=float(inputs.reserve_multiplier), step=0.1, key="vc_reserve")
        tilt = st.slider("Skill Tilt", -2.0, 2.0, value=float(inputs.skill_tilt),
                         step=0.1, key="vc_tilt")

    state = state.with_vc(fund_size=fund_size, deals=int(deals),
                          reserve_multiplier=reserve, skill_tilt=tilt)
    if st.button("🎲 Run Simulation", key="vc_run"):
        state = state.rerun_vc()

    try:
        sim = simulate_vc_fund(state.seed, **asdict(state.vc))
    except ValidationError as e:
        st.error(f"❌ {e}")
        return state

    c1, c2, c3 = st.columns(3)
    c1.metric("Invested", f"{format_currency(sim.invested_total)}m")
    c1.metric("Returned", f"{format_currency(sim.returned_total)}m")
    c2.metric("TVPI", format_multiple(sim.tvpi))
    c2.metric("IRR (≈10y)", format_percentage(sim.irr))
    c3.metric("#≥10×", sim.hits_10x)
    c3.metric("Top outcome", format_multiple(sim.top_multiple, 1))

    g1, g2 = st.columns(2)
    with g1:
        _gate(sim.pass_tvpi, "TVPI ✓", f"TVPI < {VC_MIN_TVPI:.0f}×")
    with g2:
        _gate(sim.pass_irr, "IRR ✓", f"IRR < {VC_MIN_IRR:.0%}")

    fig, ax = plt.subplots(figsize=(10, 4))
    multiples = np.array(sim.multiples)
    colors = np.where(multiples >= 2.0, 'green', 'grey')
    ax.bar(np.arange(1, len(multiples) + 1), multiples, color=colors)
    ax.set_yscale('symlog', linthresh=1.0)
    ax.set_xlabel('Deal')
    ax.set_ylabel('Multiple (×)')
    ax.set_title(f"Outcome Multiples (run {state.vc.run})")
    ax.grid(True, alpha=0.3)
    st.pyplot(fig)
    plt.close()

    with st.expander("📝 Outcome buckets & deals"):
        st.dataframe(pd.DataFrame({
            'Bucket': [b.label for b in sim.buckets],
            'Probability': [b.probability for b in sim.buckets],
        }).round(4), use_container_width=True)
        st.dataframe(sim.to_frame().round(3), use_container_width=True)

    return state


# =============================================================================
# MAIN APPLICATION
# =============================================================================

MODULE_VIEWS = {
    "DCF": dcf_module,
    "LBO": lbo_module,
    "M&A": merger_module,
    "HF": hedge_fund_module,
    "VC": vc_module,
}


def main():
    st.set_page_config(
        page_title="Finance Skill Simulator",
        page_icon="📊",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    st.markdown("""
    <style>
    .stMetric {
        background-color: #f0f2f6;
        padding: 10px;
        border-radius: 5px;
    }
    div[data-testid="stMetricValue"] {
        font-size: 1.2rem;
    }
    </style>
    """, unsafe_allow_html=True)

    state = _get_state()

    st.sidebar.title("📊 Finance Skill Simulator")
    st.sidebar.markdown("---")
    seed = st.sidebar.text_input("Case ID", value=state.seed)
    state = state.with_seed(seed)

    label = st.sidebar.radio("Select Module:", list(MODULE_LABELS))
    state = state.with_module(MODULE_LABELS[label])

    st.sidebar.markdown("---")
    st.sidebar.info("""
    **Tips:**
    - Change the Case ID for a new random scenario
    - In HF, balance gross and net before chasing return
    - In VC, re-run and try several Case IDs to see the power law
    """)

    if st.sidebar.button("🧪 Run regression checks"):
        passed, messages = run_case_regression_checks(verbose=False)
        if passed:
            st.sidebar.success("All checks passed")
        else:
            st.sidebar.error("Some checks failed")
        st.sidebar.code("\n".join(messages))

    st.title("🎓 Finance Skill Simulator")
    st.caption("DCF • LBO • M&A EPS • Hedge Fund L/S • VC Power-Law")
    st.markdown("---")

    state = MODULE_VIEWS[state.module](state)
    _set_state(state)


if __name__ == "__main__":
    main()
