import numpy as np
import pytest
from numpy.testing import assert_allclose

from channel import get_key
from conftest import make_channel
from spectrum_loss import LongTermCache, calc_long_term


class CountingCompute:
    def __init__(self):
        self.count = 0

    def __call__(self, channel, s_w, u_w):
        self.count += 1
        return calc_long_term(channel, s_w, u_w)


@pytest.fixture
def counting():
    return CountingCompute()


@pytest.fixture
def cache(counting):
    return LongTermCache(compute=counting)


# ============================================================================
#  calc_long_term
# ============================================================================

def test_matches_explicit_double_sum(random_channel, rng):
    s_w = rng.standard_normal(2) + 1j * rng.standard_normal(2)
    u_w = rng.standard_normal(3) + 1j * rng.standard_normal(3)
    h = random_channel.h_usn
    expected = np.zeros(3, dtype=complex)
    for n in range(3):
        for i in range(3):
            for j in range(2):
                expected[n] += np.conj(u_w[i]) * h[n, i, j] * s_w[j]
    assert_allclose(calc_long_term(random_channel, s_w, u_w), expected)


def test_is_deterministic(random_channel):
    s_w, u_w = np.array([1.0, 1j]), np.array([0.5, -0.5, 1j])
    first = calc_long_term(random_channel, s_w, u_w)
    second = calc_long_term(random_channel, s_w, u_w)
    assert np.array_equal(first, second)


def test_single_element_degenerates_to_coefficients():
    h = np.array([[[0.3 + 0.1j]], [[-1j]], [[2.0]]])
    channel = make_channel(h)
    assert_allclose(calc_long_term(channel, [1.0], [1.0]), h[:, 0, 0])


def test_u_weights_enter_conjugated():
    channel = make_channel(np.ones((1, 1, 1)))
    assert_allclose(calc_long_term(channel, [1.0], [1j]), [-1j])


def test_zero_clusters_give_empty_result():
    channel = make_channel(np.zeros((0, 2, 2)))
    assert calc_long_term(channel, np.ones(2), np.ones(2)).shape == (0,)


@pytest.mark.parametrize("s_w, u_w", [
    (np.ones(3), np.ones(3)),
    (np.ones(2), np.ones(2)),
    (np.ones((2, 1)), np.ones(3)),
])
def test_dimension_mismatch(random_channel, s_w, u_w):
    with pytest.raises(ValueError):
        calc_long_term(random_channel, s_w, u_w)


# ============================================================================
#  LongTermCache
# ============================================================================

KEY = get_key(0, 1)


def test_unchanged_inputs_are_served_from_cache(cache, counting, random_channel):
    s_w, u_w = np.array([1.0, 0.0]), np.array([1.0, 0.0, 0.0])
    first = cache.get(KEY, random_channel, s_w, u_w)
    for _ in range(5):
        again = cache.get(KEY, random_channel, s_w, u_w)
        assert again is first
    assert counting.count == 1
    assert (cache.misses, cache.hits) == (1, 5)


def test_beam_change_invalidates(cache, counting, random_channel):
    u_w = np.ones(3) / np.sqrt(3)
    v1 = cache.get(KEY, random_channel, np.array([1.0, 0.0]), u_w)
    v2 = cache.get(KEY, random_channel, np.array([0.0, 1.0]), u_w)
    assert counting.count == 2
    assert not np.allclose(v1, v2)

    cache.get(KEY, random_channel, np.array([0.0, 1.0]), np.array([0, 1j, 0]))
    assert counting.count == 3


def test_new_generation_invalidates(cache, counting, random_channel):
    s_w, u_w = np.ones(2), np.ones(3)
    cache.get(KEY, random_channel, s_w, u_w)
    regenerated = make_channel(random_channel.h_usn,
                               random_channel.delays_s,
                               random_channel.angles_rad)
    cache.get(KEY, regenerated, s_w, u_w)
    assert counting.count == 2


def test_entries_are_replaced_not_mutated(cache, random_channel):
    u_w = np.ones(3)
    old = cache.get(KEY, random_channel, np.array([1.0, 0.0]), u_w)
    snapshot = old.copy()
    new = cache.get(KEY, random_channel, np.array([0.0, 1.0]), u_w)
    assert new is not old
    assert np.array_equal(old, snapshot)
    with pytest.raises(ValueError):
        old[0] = 0.0


def test_cache_keeps_its_own_copy_of_the_beams(cache, counting, random_channel):
    s_w, u_w = np.array([1.0, 0.0]), np.ones(3)
    cache.get(KEY, random_channel, s_w, u_w)
    s_w[1] = 1.0
    cache.get(KEY, random_channel, s_w, u_w)
    assert counting.count == 2


def test_links_are_cached_independently(cache, counting, random_channel):
    s_w, u_w = np.ones(2), np.ones(3)
    cache.get(get_key(0, 1), random_channel, s_w, u_w)
    cache.get(get_key(0, 2), random_channel, s_w, u_w)
    assert len(cache) == 2
    assert counting.count == 2


def test_prune_and_clear(cache, random_channel):
    s_w, u_w = np.ones(2), np.ones(3)
    for other in (1, 2, 3):
        cache.get(get_key(0, other), random_channel, s_w, u_w)
    assert cache.prune([get_key(1, 0)]) == 2
    assert get_key(0, 1) in cache
    assert get_key(0, 2) not in cache
    cache.clear()
    assert len(cache) == 0
