from __future__ import annotations

import numpy as np
import pytest

from stratlab.backtest.indicators import EMA, MACD, RollingMean, WilderRSI


def _closes(n: int = 120, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return 100.0 * np.exp(np.cumsum(rng.normal(0.0, 0.02, size=n)))


def _ema_ref(x: np.ndarray, n: int) -> np.ndarray:
    out = np.full_like(x, np.nan)
    out[n - 1] = x[:n].mean()
    a = 2.0 / (n + 1.0)
    for i in range(n, x.size):
        out[i] = a * x[i] + (1.0 - a) * out[i - 1]
    return out


def test_rolling_mean_matches_convolution():
    x = _closes()
    sma = RollingMean(10)
    got = [sma.update(v) for v in x]
    ref = np.convolve(x, np.ones(10) / 10.0, mode="valid")

    assert all(v is None for v in got[:9])
    np.testing.assert_allclose(np.array(got[9:], dtype=np.float64), ref, rtol=1e-12)


def test_ema_seeded_with_sma():
    x = _closes()
    ema = EMA(12)
    got = [ema.update(v) for v in x]
    ref = _ema_ref(x, 12)

    assert all(v is None for v in got[:11])
    np.testing.assert_allclose(np.array(got[11:], dtype=np.float64), ref[11:], rtol=1e-12)


def test_rsi_first_value_after_period_plus_one_closes():
    rsi = WilderRSI(14)
    got = [rsi.update(v) for v in _closes(30)]
    assert all(v is None for v in got[:14])
    assert got[14] is not None
    assert all(0.0 <= v <= 100.0 for v in got[14:])


def test_rsi_extremes():
    up = WilderRSI(5)
    for v in range(1, 10):
        r = up.update(float(v))
    assert r == 100.0

    down = WilderRSI(5)
    for v in range(10, 0, -1):
        r = down.update(float(v))
    assert r == pytest.approx(0.0)

    flat = WilderRSI(5)
    for _ in range(10):
        r = flat.update(100.0)
    assert r == 50.0


def test_rsi_matches_wilder_reference():
    x = _closes(60)
    n = 14
    d = np.diff(x)
    g = np.where(d > 0, d, 0.0)
    lo = np.where(d < 0, -d, 0.0)
    ag, al = g[:n].mean(), lo[:n].mean()
    ref = [100.0 - 100.0 / (1.0 + ag / al)]
    for i in range(n, d.size):
        ag = (ag * (n - 1) + g[i]) / n
        al = (al * (n - 1) + lo[i]) / n
        ref.append(100.0 - 100.0 / (1.0 + ag / al))

    rsi = WilderRSI(n)
    got = [v for v in (rsi.update(c) for c in x) if v is not None]
    np.testing.assert_allclose(got, ref, rtol=1e-10)


def test_macd_histogram():
    x = _closes(200)
    m = MACD(12, 26, 9)
    hist = [m.update(v) for v in x]

    first = next(i for i, h in enumerate(hist) if h is not None)
    assert first == 26 + 9 - 2

    line = _ema_ref(x, 12) - _ema_ref(x, 26)
    sig = _ema_ref(line[25:], 9)
    ref_hist = line[25:] - sig
    np.testing.assert_allclose(np.array(hist[first:], dtype=np.float64), ref_hist[8:], rtol=1e-9, atol=1e-9)
    assert m.macd is not None and m.signal is not None


def test_indicator_argument_checks():
    with pytest.raises(ValueError):
        RollingMean(0)
    with pytest.raises(ValueError):
        WilderRSI(1)
    with pytest.raises(ValueError):
        MACD(26, 12, 9)
