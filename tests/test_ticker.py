# -*- coding: utf-8 -*-
import threading

import pytest

from pm.ticker import Ticker


def test_ticker_runs_until_stopped():
    calls = []
    ran_twice = threading.Event()

    def work():
        calls.append(1)
        if len(calls) >= 2:
            ran_twice.set()

    ticker = Ticker('test', 0.01, work).start()
    assert ran_twice.wait(2)
    ticker.stop(timeout=2)

    assert not ticker.running
    count = len(calls)
    threading.Event().wait(0.05)
    assert len(calls) == count


def test_failing_tick_is_logged_and_loop_continues(caplog):
    attempts = []
    recovered = threading.Event()

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError('db is gone')
        recovered.set()

    ticker = Ticker('flaky', 0.01, flaky).start()
    assert recovered.wait(2)
    ticker.stop(timeout=2)

    assert 'Проход flaky завершился ошибкой' in caplog.text


def test_tick_swallows_errors():
    ticker = Ticker('once', 60, lambda: 1 / 0)
    assert ticker.tick() is None
    assert not ticker.running


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        Ticker('bad', 0, lambda: None)
