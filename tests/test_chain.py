"""
Tests for option chain generation.
"""

from datetime import date

import pytest
import numpy as np

from chainpricer import chain as chain_module
from chainpricer import config
from chainpricer.black_scholes import bs_price
from chainpricer.chain import OptionContract, generate_chain, price_contract, time_to_expiry
from chainpricer.exceptions import InvalidInput
from chainpricer.ladders import build_strike_ladder
from chainpricer.providers import generate_price_series
from chainpricer.volatility import estimate_volatility


EXPIRIES = (0, 30, 60, 90, 180)


@pytest.fixture
def abc_chain():
    series = generate_price_series(days=90, end_close=101.0, volatility=0.28, seed=7)
    closes = [p.close for p in series]
    spot = closes[-1]
    return generate_chain(
        "ABC", spot, estimate_volatility(closes), 0.035,
        build_strike_ladder(spot), EXPIRIES,
    )


class TestGenerateChain:
    """Shape and per-contract invariants."""

    def test_end_to_end_abc(self, abc_chain):
        assert abc_chain.spot == pytest.approx(101.0)
        assert abc_chain.strikes == (125, 120, 115, 110, 105, 100, 95, 90, 85, 80)
        assert config.MIN_VOLATILITY <= abc_chain.volatility <= config.MAX_VOLATILITY
        assert abc_chain.contract("call", 30, 100).in_the_money
        assert not abc_chain.contract("put", 30, 100).in_the_money

    def test_keys_follow_expiry_ladder(self, abc_chain):
        assert abc_chain.days_to_expiry == EXPIRIES

    def test_every_expiry_has_full_ladder(self, abc_chain):
        for exp in abc_chain.expiries.values():
            assert [c.strike for c in exp.calls] == list(abc_chain.strikes)
            assert [c.strike for c in exp.puts] == list(abc_chain.strikes)

    def test_contract_invariants(self, abc_chain):
        spot = abc_chain.spot
        for exp in abc_chain.expiries.values():
            for c in exp.calls:
                assert c.price >= config.MIN_TICK
                assert 0 <= c.delta <= 1
                assert c.gamma >= 0 and c.vega >= 0
                assert c.in_the_money == (spot > c.strike)
            for p in exp.puts:
                assert p.price >= config.MIN_TICK
                assert -1 <= p.delta <= 0
                assert p.in_the_money == (spot < p.strike)

    def test_zero_dte_priced_as_one_day(self):
        snap = generate_chain("X", 100.0, 0.3, 0.035, (100.0,), (0, 1))
        assert snap.contract("call", 0, 100.0) == snap.contract("call", 1, 100.0)

    def test_custom_date_echoed(self):
        snap = generate_chain("X", 100.0, 0.3, 0.035, (100.0,), (30,), custom_date=date(2024, 7, 18))
        assert snap.custom_date == "2024-07-18"

    def test_contract_lookup_missing(self, abc_chain):
        with pytest.raises(KeyError):
            abc_chain.contract("call", 30, 101)
        with pytest.raises(KeyError):
            abc_chain.contract("call", 45, 100)

    def test_invalid_spot_or_vol(self):
        with pytest.raises(InvalidInput):
            generate_chain("X", 0.0, 0.3, 0.035, (100.0,), (30,))
        with pytest.raises(InvalidInput):
            generate_chain("X", 100.0, 0.0, 0.035, (100.0,), (30,))


class TestPlaceholders:
    """One bad strike never takes down the chain."""

    def test_failing_strike_becomes_placeholder(self, monkeypatch):
        def flaky_price(option_type, S, K, T, r, sigma):
            if K == 100:
                raise ValueError("math domain error")
            return bs_price(option_type, S, K, T, r, sigma)

        monkeypatch.setattr(chain_module, "bs_price", flaky_price)
        snap = generate_chain("X", 101.0, 0.3, 0.035, build_strike_ladder(101.0), EXPIRIES)

        for days in EXPIRIES:
            for side in ("call", "put"):
                bad = snap.contract(side, days, 100)
                assert bad == OptionContract.placeholder(100)
                good = snap.contract(side, days, 105)
                assert good.delta != 0.0

    def test_non_positive_strike_placeholder(self):
        snap = generate_chain("X", 100.0, 0.3, 0.035, (105.0, -5.0), (30,))
        assert snap.contract("put", 30, -5.0) == OptionContract.placeholder(-5.0)
        assert snap.contract("put", 30, 105.0).price > 5.0

    def test_placeholder_fields(self):
        p = OptionContract.placeholder(42.0)
        assert p.price == config.MIN_TICK
        assert (p.delta, p.gamma, p.theta, p.vega, p.rho) == (0.0, 0.0, 0.0, 0.0, 0.0)
        assert not p.in_the_money


class TestPriceContract:

    def test_price_floored_at_min_tick(self):
        c = price_contract("call", 100.0, 300.0, time_to_expiry(30), 0.035, 0.2)
        assert c.price == config.MIN_TICK
        assert c.delta < 1e-6

    def test_greeks_in_reporting_units(self):
        c = price_contract("call", 100.0, 100.0, time_to_expiry(30), 0.035, 0.3)
        assert c.theta < 0
        assert 0 < c.vega < 1  # per 1% vol on a $100 underlying

    def test_time_to_expiry(self):
        assert time_to_expiry(0) == time_to_expiry(1) == 1 / 365
        assert time_to_expiry(365) == 1.0


class TestSerialization:

    def test_to_dict_shape(self, abc_chain):
        d = abc_chain.to_dict()
        assert d["ticker"] == "ABC"
        assert set(d["optionChain"]) == {str(x) for x in EXPIRIES}
        call = d["optionChain"]["30"]["calls"][0]
        assert set(call) == {"strike", "price", "delta", "gamma", "theta", "vega", "rho", "inTheMoney"}
        assert call["inTheMoney"] == (abc_chain.spot > call["strike"])

    def test_to_frame(self, abc_chain):
        df = abc_chain.to_frame()
        assert len(df) == 2 * len(abc_chain.strikes) * len(EXPIRIES)
        assert set(df["option_type"]) == {"call", "put"}
        assert np.all(df["price"] >= config.MIN_TICK)
