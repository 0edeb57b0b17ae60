"""Uniform random sampling of parameter matrices.

`RandomSampler` owns its generator (NumPy PCG64). Draws are reproducible:
a sampler built with the same seed yields the same matrices. Without an
explicit seed the package default `config.default_seed` (env
``ROM_FIELDS_SEED``) is used. Every entry is drawn independently from the
half-open interval ``[low, high)`` of its column.

The one-shot `rand` and `rand_bounded` draw from a shared sampler whose
state advances between calls. It is seeded from `config.default_seed` and
restarts whenever `configure(seed=...)` or `use(..., seed=...)` sets the seed.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from numpy.typing import NDArray

import numpy as np

from .config import config
from .exceptions import InvalidArgumentError, ShapeMismatchError

_LOGGER = logging.getLogger(__name__)


def _check_size(rows: int, cols: int) -> None:
    if rows < 0 or cols < 0:
        raise InvalidArgumentError(f"matrix size must be non-negative; got ({rows}, {cols})")


class RandomSampler:
    """Draw matrices of independent uniform samples.

    Args:
        seed (Optional[int]): Seed for a new PCG64 generator. Defaults to
            `config.default_seed`.
        rng (Optional[np.random.Generator]): Generator to use instead of
            creating one; `seed` must then be None.

    Attributes:
        rng (np.random.Generator): The owned generator.
    """

    rng: np.random.Generator

    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if rng is not None and seed is not None:
            raise InvalidArgumentError("pass either seed or rng, not both")
        if rng is None:
            s = config.default_seed if seed is None else int(seed)
            rng = np.random.Generator(np.random.PCG64(s))
            _LOGGER.debug("RandomSampler: new PCG64 generator with seed=%d", s)
        self.rng = rng

    def uniform(self, rows: int, cols: int, low: float, high: float) -> NDArray[Any]:
        """Return a (rows, cols) matrix drawn uniformly from ``[low, high)``.

        Raises:
            InvalidArgumentError: If ``low > high`` or a size is negative.
        """
        _check_size(rows, cols)
        if not low <= high:
            _LOGGER.error("uniform: low=%g > high=%g", low, high)
            raise InvalidArgumentError(f"low ({low}) must not exceed high ({high})")
        return self.rng.uniform(low, high, size=(rows, cols))

    def uniform_bounded(self, rows: int, bounds: NDArray[Any]) -> NDArray[Any]:
        """Return a (rows, cols) matrix with per-column bounds.

        Args:
            rows: Number of samples.
            bounds: Shape (2, cols); row 0 holds the minima, row 1 the maxima.

        Raises:
            ShapeMismatchError: If `bounds` is not (2, cols).
            InvalidArgumentError: If a minimum exceeds its maximum.
        """
        b = np.asarray(bounds, dtype=float)
        if b.ndim != 2 or b.shape[0] != 2:
            _LOGGER.error("uniform_bounded: bounds shape %s != (2, cols)", b.shape)
            raise ShapeMismatchError(f"bounds must have shape (2, cols); got {b.shape}")
        _check_size(rows, b.shape[1])
        if np.any(b[0] > b[1]):
            bad = np.flatnonzero(b[0] > b[1]).tolist()
            _LOGGER.error("uniform_bounded: min > max in columns %s", bad)
            raise InvalidArgumentError(f"columns {bad} have min > max")
        return self.rng.uniform(b[0], b[1], size=(rows, b.shape[1]))


_shared: Optional[RandomSampler] = None
_shared_epoch: int = -1


def _shared_sampler() -> RandomSampler:
    """Return the process-wide sampler, restarting it after a seed change."""
    global _shared, _shared_epoch
    if _shared is None or _shared_epoch != config.seed_epoch:
        _shared = RandomSampler()
        _shared_epoch = config.seed_epoch
        _LOGGER.debug("shared sampler restarted (seed=%d)", config.default_seed)
    return _shared


def rand(
    rows: int,
    cols: int,
    low: float,
    high: float,
    *,
    rng: Optional[np.random.Generator] = None,
) -> NDArray[Any]:
    """Draw from the shared sampler, or from `rng` when given."""
    sampler = _shared_sampler() if rng is None else RandomSampler(rng=rng)
    return sampler.uniform(rows, cols, low, high)


def rand_bounded(
    rows: int,
    bounds: NDArray[Any],
    *,
    rng: Optional[np.random.Generator] = None,
) -> NDArray[Any]:
    """Per-column bounded draw from the shared sampler, or from `rng` when given."""
    sampler = _shared_sampler() if rng is None else RandomSampler(rng=rng)
    return sampler.uniform_bounded(rows, bounds)
