from __future__ import annotations

import threading

from configurator.src.signals import ReadinessSignal


def test_signal_starts_open() -> None:
    signal = ReadinessSignal()

    assert not signal.is_closed()
    assert signal.wait(timeout=0.01) is False


def test_close_transitions_exactly_once() -> None:
    signal = ReadinessSignal()

    assert signal.close() is True
    assert signal.close() is False
    assert signal.is_closed()
    assert signal.wait(timeout=0) is True


def test_concurrent_close_reports_single_transition() -> None:
    signal = ReadinessSignal()
    barrier = threading.Barrier(16)
    results: list[bool] = []
    results_lock = threading.Lock()

    def _close() -> None:
        barrier.wait()
        transitioned = signal.close()
        with results_lock:
            results.append(transitioned)

    threads = [threading.Thread(target=_close) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert results.count(True) == 1
    assert results.count(False) == 15
    assert signal.is_closed()


def test_many_waiters_observe_close() -> None:
    signal = ReadinessSignal()
    observed: list[bool] = []
    observed_lock = threading.Lock()

    def _wait() -> None:
        result = signal.wait(timeout=5)
        with observed_lock:
            observed.append(result)

    waiters = [threading.Thread(target=_wait) for _ in range(8)]
    for waiter in waiters:
        waiter.start()
    signal.close()
    for waiter in waiters:
        waiter.join(timeout=5)

    assert observed == [True] * 8


def test_wait_or_stop_returns_false_when_stopped() -> None:
    signal = ReadinessSignal()
    stop = threading.Event()
    stop.set()

    assert signal.wait_or_stop(stop) is False


def test_wait_or_stop_times_out() -> None:
    signal = ReadinessSignal()

    assert signal.wait_or_stop(threading.Event(), timeout=0.05, poll_interval=0.01) is False


def test_wait_or_stop_returns_true_once_closed() -> None:
    signal = ReadinessSignal()
    stop = threading.Event()
    threading.Timer(0.05, signal.close).start()

    assert signal.wait_or_stop(stop, timeout=5, poll_interval=0.01) is True
