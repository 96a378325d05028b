import random

import pytest

from heysprech.services.timing import find_overlap, ms_to_seconds, overlaps, score_to_fixed, seconds_to_ms


def test_seconds_to_ms_rounds_half_away_from_zero():
    assert seconds_to_ms(1.0) == 1000
    assert seconds_to_ms(1.0005) == 1001
    assert seconds_to_ms(1.0004) == 1000
    assert seconds_to_ms(2.5e-3) == 3
    assert seconds_to_ms(-0.0005) == -1
    assert seconds_to_ms(0) == 0


def test_ms_round_trip_is_stable():
    for ms in (0, 1, 999, 1000, 1234, 59_999, 3_600_000):
        assert seconds_to_ms(ms_to_seconds(ms)) == ms


def test_seconds_round_trip_within_a_millisecond():
    rnd = random.Random(7)
    for _ in range(2000):
        # at most three decimals, up to ~3 hours
        seconds = round(rnd.randint(0, 10_800_000) / 1000, rnd.randint(0, 3))
        assert abs(ms_to_seconds(seconds_to_ms(seconds)) - seconds) <= 0.001


def test_score_is_floored():
    assert score_to_fixed(0.9999) == 999
    assert score_to_fixed(0.98) == 980
    assert score_to_fixed(1.0) == 1000
    assert score_to_fixed(0) == 0


@pytest.mark.parametrize('bad', [float('nan'), float('inf'), None, True])
def test_non_numbers_are_rejected(bad):
    with pytest.raises(ValueError):
        seconds_to_ms(bad)


def test_touching_intervals_do_not_overlap():
    assert not overlaps(1000, 2000, 2000, 3000)
    assert not overlaps(2000, 3000, 1000, 2000)
    assert overlaps(1000, 2000, 1500, 2500)
    assert overlaps(1000, 3000, 1500, 2500)
    assert overlaps(1500, 2500, 1000, 3000)


def test_overlap_is_symmetric_on_random_intervals():
    rnd = random.Random(42)
    for _ in range(500):
        a = sorted(rnd.sample(range(0, 100), 2))
        b = sorted(rnd.sample(range(0, 100), 2))
        assert overlaps(a[0], a[1], b[0], b[1]) == overlaps(b[0], b[1], a[0], a[1])
        # brute force over integer points of the half-open ranges
        shared = set(range(a[0], a[1])) & set(range(b[0], b[1]))
        assert overlaps(a[0], a[1], b[0], b[1]) == bool(shared)


def test_find_overlap_returns_first_clash():
    intervals = [(0, 1000, 'a'), (1000, 2000, 'b'), (2500, 3000, 'c')]
    assert find_overlap(2000, 2500, intervals) is None
    assert find_overlap(1500, 2600, intervals)[2] == 'b'
    assert find_overlap(0, 10, []) is None
