"""
Tests for the Black-Scholes pricing module.

Covers: normal CDF accuracy, pricing accuracy, put-call parity,
near-expiry behaviour, greek signs/bounds, and input validation.

Run with: pytest tests/ -v
"""

import pytest
import numpy as np
from scipy.stats import norm

from chainpricer.black_scholes import (
    norm_cdf, norm_pdf,
    bs_price, call_price, put_price,
    delta, gamma, vega, theta, rho, greeks,
    d1, d2,
)
from chainpricer.exceptions import InvalidInput


# ── fixtures ─────────────────────────────────────────────────────────

# standard test parameters: ATM SPY-like option
S = 600.0
K = 600.0
T = 0.25  # 3 months
r = 0.05
sigma = 0.20


class TestNormalDistribution:
    """Polynomial CDF approximation."""

    def test_cdf_at_zero(self):
        assert abs(norm_cdf(0.0) - 0.5) < 1e-7

    def test_cdf_symmetry(self):
        for x in np.linspace(-8, 8, 161):
            assert abs(norm_cdf(-x) + norm_cdf(x) - 1.0) < 1e-7, f"symmetry failed at x={x}"

    def test_cdf_matches_exact(self):
        """Zelen-Severo error bound is 7.5e-8."""
        for x in np.linspace(-6, 6, 241):
            assert abs(norm_cdf(x) - norm.cdf(x)) < 1e-7, f"accuracy failed at x={x}"

    def test_cdf_bounds_and_monotone(self):
        xs = np.linspace(-10, 10, 401)
        values = [norm_cdf(x) for x in xs]
        assert all(0.0 <= v <= 1.0 for v in values)
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_pdf_matches_exact(self):
        for x in (-3.0, -0.5, 0.0, 1.2, 4.0):
            assert norm_pdf(x) == pytest.approx(norm.pdf(x), rel=1e-12)


class TestPricing:
    """Basic pricing correctness."""

    def test_call_price_positive(self):
        assert call_price(S, K, T, r, sigma) > 0

    def test_put_price_positive(self):
        assert put_price(S, K, T, r, sigma) > 0

    def test_matches_reference_value(self):
        """Hull's textbook example: S=42, K=40, T=0.5, r=10%, vol=20%."""
        assert call_price(42, 40, 0.5, 0.10, 0.20) == pytest.approx(4.76, abs=0.01)
        assert put_price(42, 40, 0.5, 0.10, 0.20) == pytest.approx(0.81, abs=0.01)

    def test_put_call_parity(self):
        """
        Put-call parity: C - P = S - K*e^{-rT}

        Model-independent for European options. If this fails,
        something fundamental is wrong with the pricing formulas.
        """
        for K_test in [450.0, 500.0, 550.0, 600.0, 650.0, 700.0]:
            for T_test in [1 / 365, 0.1, 0.5, 2.0]:
                c = call_price(S, K_test, T_test, r, sigma)
                p = put_price(S, K_test, T_test, r, sigma)
                rhs = S - K_test * np.exp(-r * T_test)
                assert abs((c - p) - rhs) < 1e-6, f"PCP failed at K={K_test}, T={T_test}"

    def test_call_lower_bound(self):
        """Call price >= max(S - K*e^{-rT}, 0)."""
        c = call_price(S, 550.0, T, r, sigma)
        assert c >= max(S - 550.0 * np.exp(-r * T), 0) - 1e-10

    def test_near_expiry_is_intrinsic(self):
        """Below the near-expiry threshold the formula is skipped."""
        assert call_price(600, 550, 1e-6, r, sigma) == 50.0
        assert call_price(600, 650, 1e-6, r, sigma) == 0.0
        assert put_price(600, 650, 1e-6, r, sigma) == 50.0
        assert put_price(600, 550, 1e-6, r, sigma) == 0.0

    def test_converges_to_intrinsic(self):
        """As T -> 0+, price -> payoff."""
        for K_test in [90.0, 100.0, 110.0]:
            c = call_price(100.0, K_test, 1e-4, r, sigma)
            p = put_price(100.0, K_test, 1e-4, r, sigma)
            assert c == pytest.approx(max(100.0 - K_test, 0.0), abs=0.1)
            assert p == pytest.approx(max(K_test - 100.0, 0.0), abs=0.1)

    def test_bs_price_dispatch(self):
        assert bs_price("call", S, K, T, r, sigma) == call_price(S, K, T, r, sigma)
        assert bs_price("put", S, K, T, r, sigma) == put_price(S, K, T, r, sigma)
        assert bs_price("C", S, K, T, r, sigma) == call_price(S, K, T, r, sigma)
        assert bs_price("p", S, K, T, r, sigma) == put_price(S, K, T, r, sigma)

    def test_bs_price_invalid_type(self):
        with pytest.raises(InvalidInput) as exc:
            bs_price("straddle", S, K, T, r, sigma)
        assert exc.value.field == "option_type"

    def test_d2_relation(self):
        assert d2(S, K, T, r, sigma) == pytest.approx(d1(S, K, T, r, sigma) - sigma * np.sqrt(T))


class TestInputValidation:
    """Each precondition fails on its own field."""

    @pytest.mark.parametrize("field,args", [
        ("S", (0.0, K, T, r, sigma)),
        ("S", (-1.0, K, T, r, sigma)),
        ("K", (S, 0.0, T, r, sigma)),
        ("T", (S, K, 0.0, r, sigma)),
        ("T", (S, K, -0.5, r, sigma)),
        ("sigma", (S, K, T, r, 0.0)),
        ("sigma", (S, K, T, r, np.nan)),
        ("r", (S, K, T, np.inf, sigma)),
    ])
    def test_invalid_field_named(self, field, args):
        with pytest.raises(InvalidInput) as exc:
            bs_price("call", *args)
        assert exc.value.field == field

    def test_greeks_validate_too(self):
        with pytest.raises(InvalidInput):
            greeks(S, -5.0, T, r, sigma, "put")


class TestGreeks:
    """Greek signs, bounds, and symmetries."""

    def test_call_delta_bounds(self):
        for K_test in [300, 500, 550, 600, 650, 700, 1000]:
            d = delta(S, K_test, T, r, sigma, "call")
            assert 0 <= d <= 1, f"Call delta out of bounds at K={K_test}: {d}"

    def test_put_delta_bounds(self):
        for K_test in [300, 500, 550, 600, 650, 700, 1000]:
            d = delta(S, K_test, T, r, sigma, "put")
            assert -1 <= d <= 0, f"Put delta out of bounds at K={K_test}: {d}"

    def test_put_delta_is_call_minus_one(self):
        assert delta(S, 620, T, r, sigma, "put") == pytest.approx(delta(S, 620, T, r, sigma, "call") - 1)

    def test_gamma_peaks_atm(self):
        g_atm = gamma(S, 600, T, r, sigma)
        assert g_atm > gamma(S, 550, T, r, sigma)
        assert g_atm > gamma(S, 650, T, r, sigma)

    def test_vega_matches_finite_difference(self):
        h = 1e-3
        bump = (call_price(S, K, T, r, sigma + h) - call_price(S, K, T, r, sigma - h)) / (2 * h)
        assert vega(S, K, T, r, sigma) == pytest.approx(bump, rel=1e-3)

    def test_long_call_theta_negative(self):
        assert theta(S, K, T, r, sigma, "call") < 0

    def test_call_rho_positive(self):
        assert rho(S, K, T, r, sigma, "call") > 0

    def test_put_rho_negative(self):
        assert rho(S, K, T, r, sigma, "put") < 0

    def test_greeks_bundle_units(self):
        """greeks() reports theta per day, vega and rho per 1%."""
        for option_type in ("call", "put"):
            g = greeks(S, 610, T, r, sigma, option_type)
            assert g.delta == pytest.approx(delta(S, 610, T, r, sigma, option_type))
            assert g.gamma == pytest.approx(gamma(S, 610, T, r, sigma))
            assert g.theta == pytest.approx(theta(S, 610, T, r, sigma, option_type) / 365)
            assert g.vega == pytest.approx(vega(S, 610, T, r, sigma) / 100)
            assert g.rho == pytest.approx(rho(S, 610, T, r, sigma, option_type) / 100)

    def test_near_expiry_greeks_step(self):
        g = greeks(600, 550, 1e-6, r, sigma, "call")
        assert g.delta == 1.0
        assert g.gamma == g.vega == g.theta == g.rho == 0.0
        assert greeks(600, 650, 1e-6, r, sigma, "put").delta == -1.0


class TestEdgeCases:
    """Numerical stability."""

    def test_very_short_maturity(self):
        """One-day ITM call still has positive value."""
        assert call_price(600, 590, 1 / 365, r, 0.20) > 10

    def test_very_high_vol(self):
        c = call_price(100, 100, 1.0, 0.05, 5.0)
        assert np.isfinite(c)
        assert 0 < c < 100

    def test_very_low_vol(self):
        """Near-zero vol: call approaches discounted intrinsic."""
        c = call_price(600, 550, 1.0, 0.05, 0.001)
        assert abs(c - (600 - 550 * np.exp(-0.05))) < 0.5
