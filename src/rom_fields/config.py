"""Package-wide settings for rom-fields.

Holds the array backend used by the dense weighted products (NumPy on CPU,
CuPy on GPU), the numerical defaults shared by the sampling and projection
routines, and the package log level. Everything can be set from the
environment at import time and changed at runtime:

    ROM_FIELDS_GPU        1/true/gpu, 0/false/cpu, anything else = auto
    ROM_FIELDS_SEED       default seed of `RandomSampler` (1234)
    ROM_FIELDS_RCOND      reciprocal-condition limit of projections (1e-12)
    ROM_FIELDS_LOGLEVEL   level of the ``rom_fields`` logger (WARNING)

Modules import `xp` from here; it is a proxy that always resolves to the
array module of the active backend.
"""

from __future__ import annotations

from dataclasses import dataclass
import contextlib
import logging
import os
from typing import Any, Callable, ContextManager, Iterator, Optional, TypeVar

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

_TRUTHY = frozenset({"1", "y", "yes", "t", "true", "on"})
_FALSY = frozenset({"0", "n", "no", "f", "false", "off"})


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
def set_log_level(level: str | int = "WARNING") -> None:
    """Set the level of the ``rom_fields`` package logger.

    Unknown level names fall back to WARNING.

    Args:
        level: A logging level name ("DEBUG", "info", ...) or integer.
    """
    if isinstance(level, int):
        resolved = level
    else:
        resolved = getattr(logging, str(level).strip().upper(), logging.WARNING)
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    logging.getLogger("rom_fields").setLevel(resolved)


set_log_level(os.getenv("ROM_FIELDS_LOGLEVEL", "WARNING"))


# -----------------------------------------------------------------------------
# Environment parsing
# -----------------------------------------------------------------------------
def _from_env(varname: str, default: _T, cast: Callable[[str], _T]) -> _T:
    raw = os.getenv(varname)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        _LOGGER.error("Environment %s=%r could not be parsed", varname, raw)
        raise


def _truth(raw: str) -> bool:
    val = raw.lower()
    if val in _TRUTHY:
        return True
    if val in _FALSY:
        return False
    raise ValueError(f"invalid truth value {raw!r}")


def bool_env(varname: str, default: bool) -> bool:
    """Read a yes/no flag (1/0, true/false, on/off, y/n) from the environment.

    Raises:
        ValueError: If the variable is set to anything else.
    """
    return _from_env(varname, default, _truth)


def int_env(varname: str, default: int) -> int:
    """Read an integer from the environment."""
    return _from_env(varname, default, int)


def float_env(varname: str, default: float) -> float:
    """Read a float from the environment."""
    return _from_env(varname, default, float)


def _device_env() -> str:
    """Map ROM_FIELDS_GPU to 'gpu', 'cpu' or 'auto'."""
    raw = os.getenv("ROM_FIELDS_GPU", "").strip().lower()
    if raw in _TRUTHY or raw == "gpu":
        return "gpu"
    if raw in _FALSY or raw == "cpu":
        return "cpu"
    return "auto"


# -----------------------------------------------------------------------------
# Array backends
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ArrayBackend:
    """An array module together with its host transfer rules.

    Attributes:
        name (str): 'numpy' or 'cupy'.
        is_gpu (bool): True when arrays live on a CUDA device.
        xp (Any): The array module.
    """

    name: str
    is_gpu: bool
    xp: Any

    def to_cpu(self, a: Any) -> Any:
        """Return `a` as a host (NumPy) array; non-device inputs pass through."""
        if self.is_gpu and isinstance(a, self.xp.ndarray):
            return self.xp.asnumpy(a)
        return a

    def to_device(self, a: Any, dtype: Any | None = None) -> Any:
        """Return `a` as an array of this backend, optionally cast to `dtype`."""
        return self.xp.asarray(a, dtype=dtype)


def _numpy_backend() -> ArrayBackend:
    import numpy as np

    return ArrayBackend(name="numpy", is_gpu=False, xp=np)


def _cupy_backend() -> ArrayBackend:
    """Build the CuPy backend.

    Raises:
        ImportError: If CuPy is not installed.
        RuntimeError: If CuPy sees no CUDA device.
    """
    import cupy as cp

    n_devices = cp.cuda.runtime.getDeviceCount()
    if n_devices < 1:
        raise RuntimeError("CuPy is installed but no CUDA device is visible")
    _LOGGER.debug("CuPy sees %d CUDA device(s)", n_devices)
    return ArrayBackend(name="cupy", is_gpu=True, xp=cp)


def _select_backend(device: str, *, strict: bool = False) -> ArrayBackend:
    """Resolve a device request into a backend.

    'gpu' falls back to NumPy on failure unless `strict`; 'auto' always
    falls back silently.

    Raises:
        ValueError: If `device` is not 'cpu', 'gpu' or 'auto'.
    """
    if device not in ("cpu", "gpu", "auto"):
        _LOGGER.error("Unknown device %r", device)
        raise ValueError(f"unknown device {device!r}; expected 'cpu', 'gpu' or 'auto'")
    if device == "cpu":
        return _numpy_backend()
    try:
        return _cupy_backend()
    except Exception as err:
        if device == "auto":
            _LOGGER.debug("No GPU backend (%r); using NumPy", err)
        elif strict:
            _LOGGER.error("GPU backend requested but unavailable: %r", err)
            raise
        else:
            _LOGGER.warning("GPU backend unavailable (%r); falling back to NumPy", err)
        return _numpy_backend()


# -----------------------------------------------------------------------------
# Settings object
# -----------------------------------------------------------------------------
class Config:
    """Mutable package settings.

    Attributes:
        default_seed (int): Seed used by `RandomSampler` when none is given.
        rcond_limit (float): Smallest accepted reciprocal condition number of
            a mass matrix before it is factorized.
        seed_epoch (int): Bumped whenever the seed is set or restored; the
            shared sampler of `rom_fields.sampling` restarts when it changes.
    """

    default_seed: int
    rcond_limit: float
    seed_epoch: int

    def __init__(self) -> None:
        self.default_seed = int_env("ROM_FIELDS_SEED", 1234)
        self.rcond_limit = float_env("ROM_FIELDS_RCOND", 1e-12)
        self.seed_epoch = 0
        self._backend = _select_backend(_device_env())
        _LOGGER.info("rom_fields settings: %r", self)

    def __repr__(self) -> str:
        return (
            f"Config(backend={self._backend.name!r}, "
            f"default_seed={self.default_seed}, rcond_limit={self.rcond_limit:g})"
        )

    def configure(
        self,
        device: str = "auto",
        *,
        seed: Optional[int] = None,
        rcond_limit: Optional[float] = None,
        strict: bool = False,
    ) -> Config:
        """Switch backend and, optionally, the numerical defaults.

        Args:
            device: 'cpu', 'gpu' or 'auto'.
            seed: New `default_seed`.
            rcond_limit: New `rcond_limit`, must be > 0.
            strict: Raise instead of falling back when the GPU is unavailable.

        Returns:
            Config: self, so calls can be chained.

        Raises:
            ValueError: On an unknown device or a non-positive `rcond_limit`.
        """
        if rcond_limit is not None and not rcond_limit > 0.0:
            _LOGGER.error("configure: rcond_limit=%r is not > 0", rcond_limit)
            raise ValueError(f"rcond_limit must be > 0; got {rcond_limit!r}")
        backend = _select_backend(device, strict=strict)

        self._backend = backend
        if seed is not None:
            self.default_seed = int(seed)
            self.seed_epoch += 1
        if rcond_limit is not None:
            self.rcond_limit = float(rcond_limit)
        _LOGGER.info("rom_fields settings: %r", self)
        return self

    @contextlib.contextmanager
    def use(
        self,
        device: str,
        *,
        seed: Optional[int] = None,
        rcond_limit: Optional[float] = None,
        strict: bool = False,
    ) -> Iterator[Config]:
        """Apply `configure` for the duration of a ``with`` block.

        The previous backend, seed and limit are restored on exit, also when
        the block raises.
        """
        saved = (self._backend, self.default_seed, self.rcond_limit)
        try:
            yield self.configure(
                device, seed=seed, rcond_limit=rcond_limit, strict=strict
            )
        finally:
            self._backend, self.default_seed, self.rcond_limit = saved
            if seed is not None:
                self.seed_epoch += 1
            _LOGGER.debug("rom_fields settings restored: %r", self)

    @property
    def is_gpu(self) -> bool:
        return self._backend.is_gpu

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def xp(self) -> Any:
        return self._backend.xp

    def to_cpu(self, a: Any) -> Any:
        return self._backend.to_cpu(a)

    def to_device(self, a: Any, dtype: Any | None = None) -> Any:
        return self._backend.to_device(a, dtype=dtype)


class _XPProxy:
    """Forwards attribute access to the array module of the active backend."""

    def __init__(self, cfg: Config) -> None:
        self._cfg = cfg

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cfg.xp, name)


config = Config()
xp = _XPProxy(config)


# Module-level shortcuts onto the singleton
def to_cpu(a: Any) -> Any:
    return config.to_cpu(a)


def to_device(a: Any, dtype: Any | None = None) -> Any:
    return config.to_device(a, dtype=dtype)


def is_gpu() -> bool:
    return config.is_gpu


def backend_name() -> str:
    return config.backend_name


def configure(
    device: str = "auto",
    *,
    seed: Optional[int] = None,
    rcond_limit: Optional[float] = None,
    strict: bool = False,
) -> Config:
    """See `Config.configure`."""
    return config.configure(device, seed=seed, rcond_limit=rcond_limit, strict=strict)


def use(
    device: str,
    *,
    seed: Optional[int] = None,
    rcond_limit: Optional[float] = None,
    strict: bool = False,
) -> ContextManager[Config]:
    """See `Config.use`."""
    return config.use(device, seed=seed, rcond_limit=rcond_limit, strict=strict)
