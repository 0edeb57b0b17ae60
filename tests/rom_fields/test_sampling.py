"""Unit tests for RandomSampler and the module-level sampling helpers.

This test suite verifies:
- Draws have the requested shape and stay in ``[low, high)``
- Samplers built with the same seed reproduce their draws
- `rand` and `rand_bounded` share one generator whose state advances
- Setting the seed through `configure`/`use` restarts the shared generator
- Per-column bounds and argument validation
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from rom_fields.config import config, configure, use
from rom_fields.exceptions import InvalidArgumentError, ShapeMismatchError
from rom_fields.sampling import RandomSampler, rand, rand_bounded


def test_uniform_shape_and_range():
    """Test that uniform draws have the requested shape and lie in [low, high)."""
    s = RandomSampler(seed=0)
    m = s.uniform(200, 3, -1.0, 2.0)
    assert m.shape == (200, 3)
    assert m.min() >= -1.0 and m.max() < 2.0


def test_same_seed_same_draws():
    """Test that equal seeds reproduce a matrix and different seeds do not."""
    a = RandomSampler(seed=42).uniform(4, 2, 0.0, 1.0)
    b = RandomSampler(seed=42).uniform(4, 2, 0.0, 1.0)
    c = RandomSampler(seed=43).uniform(4, 2, 0.0, 1.0)
    assert_allclose(a, b)
    assert not np.allclose(a, c)


def test_sampler_state_advances():
    """Test that consecutive draws of one sampler differ."""
    s = RandomSampler(seed=1)
    assert not np.allclose(s.uniform(2, 2, 0.0, 1.0), s.uniform(2, 2, 0.0, 1.0))


def test_shared_sampler_advances_between_calls():
    """
    Test that back-to-back `rand` calls continue one sequence.

    This test ensures that:
    - Two identical calls return different matrices.
    - Together they match a fresh sampler seeded with the default seed.
    """
    a = rand(2, 3, 0.0, 1.0)
    b = rand(2, 3, 0.0, 1.0)
    assert not np.array_equal(a, b)

    ref = RandomSampler(seed=config.default_seed)
    assert_allclose(a, ref.uniform(2, 3, 0.0, 1.0))
    assert_allclose(b, ref.uniform(2, 3, 0.0, 1.0))


def test_seed_change_restarts_shared_sampler():
    """
    Test that setting the seed restarts the shared sequence.

    This test ensures that:
    - `use(..., seed=s)` starts the sequence of a sampler seeded with s.
    - Entering the same context again replays it.
    - `configure(seed=s)` restarts it as well, also for `rand_bounded`.
    """
    with use("cpu", seed=5):
        first = rand(3, 2, 0.0, 1.0)
        second = rand(3, 2, 0.0, 1.0)
    ref = RandomSampler(seed=5)
    assert_allclose(first, ref.uniform(3, 2, 0.0, 1.0))
    assert_allclose(second, ref.uniform(3, 2, 0.0, 1.0))

    with use("cpu", seed=5):
        assert_allclose(rand(3, 2, 0.0, 1.0), first)

    configure("cpu", seed=7)
    bounds = np.array([[0.0, 10.0], [1.0, 20.0]])
    assert_allclose(
        rand_bounded(4, bounds), RandomSampler(seed=7).uniform_bounded(4, bounds)
    )


def test_injected_generator_is_used():
    """Test that an explicit generator bypasses the shared sampler."""
    gen = np.random.default_rng(9)
    expected = np.random.default_rng(9).uniform(0.0, 1.0, size=(2, 2))
    assert_allclose(rand(2, 2, 0.0, 1.0, rng=gen), expected)
    with pytest.raises(InvalidArgumentError):
        RandomSampler(seed=1, rng=gen)


def test_uniform_bounded_per_column():
    """Test that every column respects its own [min, max) interval."""
    bounds = np.array([[0.0, 10.0, -5.0], [1.0, 20.0, -4.0]])
    m = RandomSampler(seed=3).uniform_bounded(500, bounds)
    assert m.shape == (500, 3)
    for j in range(3):
        assert m[:, j].min() >= bounds[0, j]
        assert m[:, j].max() < bounds[1, j]
    assert rand_bounded(2, bounds).shape == (2, 3)


def test_invalid_arguments():
    """Test rejection of inverted ranges, negative sizes and malformed bounds."""
    s = RandomSampler(seed=0)
    with pytest.raises(InvalidArgumentError):
        s.uniform(2, 2, 1.0, 0.0)
    with pytest.raises(InvalidArgumentError):
        s.uniform(-1, 2, 0.0, 1.0)
    with pytest.raises(ShapeMismatchError):
        s.uniform_bounded(2, np.zeros((3, 2)))
    with pytest.raises(InvalidArgumentError):
        s.uniform_bounded(2, np.array([[1.0], [0.0]]))
