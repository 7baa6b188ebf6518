import pytest

from app.services.indicators import (
    DETAIL_VIEW_DAYS,
    compute_indicators,
    ema,
    latest_rsi,
    macd,
    moving_average,
    rsi,
    tail,
)


# --- moving average ---

def test_moving_average_ramps_up_before_full_window():
    assert moving_average([1, 2, 3, 4, 5, 6], 3) == [None, 1.5, 2.0, 3.0, 4.0, 5.0]


def test_moving_average_shorter_than_period_keeps_length():
    assert moving_average([10, 20, 30], 5) == [None, 15.0, 20.0]


def test_moving_average_full_window_uses_trailing_closes():
    closes = [float(c) for c in range(1, 31)]
    ma = moving_average(closes, 25)
    assert ma[24] == pytest.approx(sum(closes[:25]) / 25)
    assert ma[29] == pytest.approx(sum(closes[5:30]) / 25)


def test_moving_average_rounding():
    assert moving_average([1, 2, 2], 3)[2] == 1.67
    assert moving_average([1, 2, 2], 3, ndigits=None)[2] == pytest.approx(5 / 3)


def test_moving_average_degenerate_inputs():
    assert moving_average([], 5) == []
    assert moving_average([5.0], 5) == [None]
    assert moving_average([1, 2, 3], 1) == [None, None, None]


# --- RSI ---

def test_rsi_all_rising_uses_rs_100_convention():
    closes = [float(c) for c in range(100, 115)]  # 15 points, 14 rising deltas
    values = rsi(closes, 14)
    assert values[:14] == [None] * 14
    assert values[14] == pytest.approx(100 - 100 / 101)
    assert values[14] != 100


def test_rsi_list_period_default():
    closes = [float(c) for c in range(1, 12)]
    values = rsi(closes)
    assert values[:9] == [None] * 9
    assert values[9] == pytest.approx(99.0099, abs=1e-3)
    assert values[10] == pytest.approx(99.0099, abs=1e-3)


def test_rsi_wilder_smoothing():
    # deltas: +1, -1, +1
    values = rsi([1.0, 2.0, 1.0, 2.0], 2)
    assert values[:2] == [None, None]
    assert values[2] == pytest.approx(50.0)
    # avg_gain = (0.5 + 1) / 2, avg_loss = (0.5 + 0) / 2 -> rs = 3
    assert values[3] == pytest.approx(75.0)


def test_rsi_all_falling_is_zero():
    values = rsi([10.0, 9.0, 8.0, 7.0], 3)
    assert values[3] == pytest.approx(0.0)


def test_rsi_insufficient_history_is_all_none():
    assert rsi([1.0] * 9, 9) == [None] * 9
    assert rsi([], 14) == []


# --- EMA / MACD ---

def test_ema_seeded_with_simple_average():
    values = ema([1.0, 2.0, 3.0, 4.0], 2)
    assert values[0] is None
    assert values[1] == pytest.approx(1.5)
    assert values[2] == pytest.approx(2.5)
    assert values[3] == pytest.approx(3.5)


def test_macd_short_series_is_all_none():
    result = macd([100.0] * 25)
    assert result.macd == [None] * 25
    assert result.signal == [None] * 25
    assert result.histogram == [None] * 25


def test_macd_start_indices():
    closes = [100.0 + (i % 7) for i in range(60)]
    result = macd(closes)
    assert len(result.macd) == len(result.signal) == len(result.histogram) == 60
    assert all(v is None for v in result.macd[:25])
    assert all(v is not None for v in result.macd[25:])
    assert all(v is None for v in result.signal[:33])
    assert all(v is not None for v in result.signal[33:])
    assert all(v is None for v in result.histogram[:33])
    for m, s, h in zip(result.macd[33:], result.signal[33:], result.histogram[33:]):
        assert h == pytest.approx(m - s)


def test_macd_flat_series_is_zero():
    result = macd([250.0] * 40)
    assert result.macd[25] == pytest.approx(0.0)
    assert result.signal[33] == pytest.approx(0.0)
    assert result.histogram[39] == pytest.approx(0.0)


def test_macd_signal_only_needs_nine_macd_points():
    result = macd([float(c) for c in range(1, 34)])  # macd from 25..32, 8 points
    assert all(v is None for v in result.signal)
    result = macd([float(c) for c in range(1, 35)])
    assert result.signal[33] is not None


def test_macd_is_deterministic():
    closes = [100 + ((i * 37) % 11) - 5 for i in range(80)]
    a, b = macd(closes), macd(closes)
    assert a.macd == b.macd
    assert a.signal == b.signal
    assert a.histogram == b.histogram


# --- combined ---

def test_compute_indicators_keeps_length(make_bars):
    bars = make_bars([100.0 + i for i in range(120)])
    ind = compute_indicators(bars, rsi_period=9)
    for series in (ind.ma_short, ind.ma_mid, ind.ma_long, ind.rsi, ind.macd, ind.signal, ind.histogram):
        assert len(series) == 120
    assert ind.rsi[9] is not None and ind.rsi[8] is None

    window = ind.tail(DETAIL_VIEW_DAYS)
    assert len(window.ma_long) == DETAIL_VIEW_DAYS
    assert window.ma_long[-1] == ind.ma_long[-1]


def test_tail():
    assert tail([1, 2, 3], 2) == [2, 3]
    assert tail([1, 2, 3], 10) == [1, 2, 3]
    assert tail([1, 2, 3], 0) == []


def test_latest_rsi_for_list_cards(make_bars):
    rising = make_bars([100.0 + i for i in range(20)])
    assert latest_rsi(rising) == 99.01
    assert latest_rsi(rising, ndigits=None) == pytest.approx(100 - 100 / 101)

    # closes alternate 102 / 101 after a flat start
    zigzag = make_bars([100.0] * 5 + [100.0 + (2 if i % 2 == 0 else 1) for i in range(15)])
    assert latest_rsi(zigzag) == round(rsi([b.close for b in zigzag], 9)[-1], 2)


def test_latest_rsi_needs_fifteen_bars(make_bars):
    assert latest_rsi(make_bars([100.0 + i for i in range(14)])) is None
    assert latest_rsi(make_bars([100.0 + i for i in range(15)])) is not None
    assert latest_rsi([]) is None
