import random

import pytest

from pacedreq.core.backoff import Backoff, ExecutionConfig, apply_jitter, compute_backoff


def test_backoff_doubles_then_caps():
    delays = [compute_backoff(i, 1.0, 30.0) for i in range(1, 8)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_backoff_envelope_non_decreasing_and_capped():
    delays = [compute_backoff(i, 0.3, 7.0) for i in range(1, 80)]
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert max(delays) == 7.0


def test_backoff_large_attempt_does_not_overflow():
    assert compute_backoff(5000, 1.0, 30.0) == 30.0


def test_no_delay_before_first_attempt():
    assert compute_backoff(0, 1.0, 30.0) == 0.0


@pytest.mark.parametrize("u,expected", [(-1.0, 7.5), (0.0, 10.0), (1.0, 12.5)])
def test_apply_jitter_bounds(u, expected):
    assert apply_jitter(10.0, 0.25, u) == pytest.approx(expected)


def test_apply_jitter_never_negative():
    assert apply_jitter(10.0, 1.0, -1.0) == 0.0


def test_jittered_delays_stay_within_quarter():
    backoff = Backoff(ExecutionConfig(base_delay=0.5, max_delay=20.0), random.Random(7))
    for attempt in range(1, 40):
        base = backoff.base(attempt)
        delay = backoff.delay(attempt)
        assert 0.75 * base <= delay <= 1.25 * base
        assert delay >= 0


def test_seeded_backoff_is_reproducible():
    config = ExecutionConfig()
    first = Backoff(config, random.Random(42))
    second = Backoff(config, random.Random(42))
    assert [first.delay(i) for i in range(1, 6)] == [second.delay(i) for i in range(1, 6)]


def test_execution_config_defaults():
    config = ExecutionConfig()
    assert config.max_retries == 3
    assert config.base_delay == 1.0
    assert config.max_delay == 30.0
    assert config.jitter == 0.25
    assert config.rate_limit_damping == 0.8


@pytest.mark.parametrize("kwargs", [
    {"max_retries": -1},
    {"base_delay": 0},
    {"base_delay": 5.0, "max_delay": 1.0},
    {"jitter": 1.5},
    {"jitter": -0.1},
    {"rate_limit_damping": 1.0},
    {"rate_limit_damping": 0.0},
])
def test_execution_config_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        ExecutionConfig(**kwargs)


def test_execution_config_is_immutable():
    config = ExecutionConfig()
    with pytest.raises(Exception):
        config.max_retries = 10
