"""
Sticky arithmetic fault flags.

A fault state records which classes of floating-point fault have been signalled
since the last explicit reset. Flags are raised as a side effect of arithmetic
anywhere in the current thread, not only by the comparison that later reads
them, and stay raised until ``reset`` runs.
"""

from __future__ import annotations

import abc
import decimal
import math
import threading
from enum import Enum
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

import numpy as np
from beartype import beartype

from sample_match.logs.structlog import logger
from sample_match.types import Sample, beartype_numeric


class FaultClass(Enum):
    """Class of arithmetic fault tracked by a fault state."""

    INVALID = "invalid"
    DIVIDE_BY_ZERO = "divide_by_zero"
    OVERFLOW = "overflow"
    UNDERFLOW = "underflow"


@runtime_checkable
class FaultState(Protocol):
    """
    Protocol for an arithmetic environment with sticky fault flags.
    """

    def is_raised(self, fault: FaultClass) -> bool:
        """Whether the flag for ``fault`` is currently raised."""
        ...

    def reset(self, fault: FaultClass | None = None) -> None:
        """Clear one flag, or every flag when ``fault`` is None."""
        ...

    def raised(self) -> frozenset[FaultClass]:
        """Snapshot of the currently raised flags."""
        ...

    def abs_diff(self, a: Sample, b: Sample) -> float:
        """Compute ``|a - b|`` with the arithmetic this state observes."""
        ...


class BaseFaultState(abc.ABC, FaultState):
    """
    Abstract base class for fault states.

    Subclasses that hook a runtime's error handling do so in ``install`` and
    undo it in ``uninstall``. Instances can be used as context managers.
    """

    @abc.abstractmethod
    def is_raised(self, fault: FaultClass) -> bool:
        pass

    @abc.abstractmethod
    def reset(self, fault: FaultClass | None = None) -> None:
        pass

    @abc.abstractmethod
    def abs_diff(self, a: Sample, b: Sample) -> float:
        pass

    def raised(self) -> frozenset[FaultClass]:
        return frozenset(fault for fault in FaultClass if self.is_raised(fault))

    @property
    def installed(self) -> bool:
        """Whether the state is hooked up in the calling thread."""
        return True

    def install(self) -> None:
        pass

    def uninstall(self) -> None:
        pass

    def __enter__(self) -> BaseFaultState:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.uninstall()


class ThreadLocalFaultState(BaseFaultState):
    """Fault state whose flags live in a per-thread set."""

    def __init__(self) -> None:
        self._local = threading.local()

    def _flags(self) -> set[FaultClass]:
        flags: set[FaultClass] | None = getattr(self._local, "flags", None)
        if flags is None:
            flags = set()
            self._local.flags = flags
        return flags

    def _raise(self, fault: FaultClass) -> None:
        self._flags().add(fault)

    @beartype
    def is_raised(self, fault: FaultClass) -> bool:
        return fault in self._flags()

    @beartype
    def reset(self, fault: FaultClass | None = None) -> None:
        if fault is None:
            self._flags().clear()
        else:
            self._flags().discard(fault)


class ManualFaultState(ThreadLocalFaultState):
    """
    Fault state driven only by explicit ``raise_fault`` calls.

    Arithmetic is plain Python float arithmetic, which never raises a flag on
    its own.
    """

    @beartype
    def raise_fault(self, fault: FaultClass = FaultClass.INVALID) -> None:
        self._raise(fault)

    @beartype_numeric
    def abs_diff(self, a: Sample, b: Sample) -> float:
        return abs(float(a) - float(b))


# Error names passed by numpy to the ``seterrcall`` callback.
_NUMPY_FAULTS: dict[str, FaultClass] = {
    "invalid value": FaultClass.INVALID,
    "divide by zero": FaultClass.DIVIDE_BY_ZERO,
    "overflow": FaultClass.OVERFLOW,
    "underflow": FaultClass.UNDERFLOW,
}


class NumpyFaultState(ThreadLocalFaultState):
    """
    Fault state fed by numpy's floating-point error handling.

    ``install`` switches numpy to ``call`` mode for every error class and
    routes the callbacks here, so any numpy floating-point operation in the
    installing thread raises the sticky flag for its fault class. numpy keeps
    its error settings per thread, so installation is tracked per thread too;
    errors raised in a thread before it installs are not recorded.
    """

    @property
    def installed(self) -> bool:
        return self._saved is not None

    @property
    def _saved(self) -> tuple[dict[str, str], Any] | None:
        return getattr(self._local, "saved", None)

    @_saved.setter
    def _saved(self, value: tuple[dict[str, str], Any] | None) -> None:
        self._local.saved = value

    def _record(self, kind: str, flag: int) -> None:
        fault = _NUMPY_FAULTS.get(kind)
        if fault is None:
            logger.warning("Unknown numpy floating-point error", kind=kind, flag=flag)
            fault = FaultClass.INVALID
        self._raise(fault)

    def install(self) -> None:
        if self._saved is not None:
            return
        previous_call = np.seterrcall(self._record)
        previous_modes = np.seterr(all="call")
        self._saved = (previous_modes, previous_call)
        logger.debug("Installed numpy fault state")

    def uninstall(self) -> None:
        if self._saved is None:
            return
        previous_modes, previous_call = self._saved
        np.seterr(**previous_modes)
        np.seterrcall(previous_call)
        self._saved = None
        logger.debug("Uninstalled numpy fault state")

    @beartype_numeric
    def abs_diff(self, a: Sample, b: Sample) -> float:
        return float(np.abs(np.float64(a) - np.float64(b)))


_DECIMAL_SIGNALS: dict[FaultClass, type[decimal.DecimalException]] = {
    FaultClass.INVALID: decimal.InvalidOperation,
    FaultClass.DIVIDE_BY_ZERO: decimal.DivisionByZero,
    FaultClass.OVERFLOW: decimal.Overflow,
    FaultClass.UNDERFLOW: decimal.Underflow,
}


def _to_decimal(value: Sample) -> decimal.Decimal:
    # Via str so 0.1 stays 0.1 rather than its binary expansion.
    return decimal.Decimal(str(value))


class DecimalFaultState(BaseFaultState):
    """
    Fault state backed by the flags of the thread's ``decimal`` context.

    Decimal context flags are already sticky; ``install`` turns off the traps
    for the tracked signals so faults are recorded instead of raised.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    @property
    def installed(self) -> bool:
        return self._saved_traps is not None

    @property
    def _saved_traps(self) -> dict[type[decimal.DecimalException], bool] | None:
        return getattr(self._local, "saved_traps", None)

    @_saved_traps.setter
    def _saved_traps(self, value: dict[type[decimal.DecimalException], bool] | None) -> None:
        self._local.saved_traps = value

    def install(self) -> None:
        if self._saved_traps is not None:
            return
        context = decimal.getcontext()
        self._saved_traps = {signal: bool(context.traps[signal]) for signal in _DECIMAL_SIGNALS.values()}
        for signal in _DECIMAL_SIGNALS.values():
            context.traps[signal] = False
        logger.debug("Installed decimal fault state")

    def uninstall(self) -> None:
        if self._saved_traps is None:
            return
        context = decimal.getcontext()
        for signal, trapped in self._saved_traps.items():
            context.traps[signal] = trapped
        self._saved_traps = None
        logger.debug("Uninstalled decimal fault state")

    @beartype
    def is_raised(self, fault: FaultClass) -> bool:
        return bool(decimal.getcontext().flags[_DECIMAL_SIGNALS[fault]])

    @beartype
    def reset(self, fault: FaultClass | None = None) -> None:
        flags = decimal.getcontext().flags
        if fault is None:
            for signal in _DECIMAL_SIGNALS.values():
                flags[signal] = False
        else:
            flags[_DECIMAL_SIGNALS[fault]] = False

    @beartype_numeric
    def abs_diff(self, a: Sample, b: Sample) -> float:
        context = decimal.getcontext()
        try:
            diff = context.abs(context.subtract(_to_decimal(a), _to_decimal(b)))
        except decimal.DecimalException:
            # Trapped signal: the context flag is set before the trap fires.
            return math.nan
        return float(diff)


_fault_state: FaultState | None = None


def get_fault_state() -> FaultState:
    """
    Return the ambient fault state, installed in the calling thread.

    A numpy fault state is created on first use. Worker threads should call
    this before doing arithmetic whose faults must be observed.
    """
    global _fault_state
    if _fault_state is None:
        _fault_state = NumpyFaultState()
    if isinstance(_fault_state, BaseFaultState):
        _fault_state.install()
    return _fault_state


@beartype
def set_fault_state(state: FaultState | None) -> FaultState | None:
    """
    Replace the ambient fault state and return the previous one.

    Passing None makes the next ``get_fault_state`` call install a fresh
    numpy fault state. The replaced state is not uninstalled.
    """
    global _fault_state
    previous = _fault_state
    _fault_state = state
    return previous


@beartype
def reset_fault_state(fault: FaultClass | None = None) -> None:
    """Clear the ambient fault flags; call between unrelated computations."""
    get_fault_state().reset(fault)
