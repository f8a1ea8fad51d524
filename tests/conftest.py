from collections.abc import Iterator

import pytest

from sample_match.faults import (
    DecimalFaultState,
    ManualFaultState,
    NumpyFaultState,
    set_fault_state,
)


@pytest.fixture
def manual_state() -> ManualFaultState:
    return ManualFaultState()


@pytest.fixture
def numpy_state() -> Iterator[NumpyFaultState]:
    with NumpyFaultState() as state:
        yield state


@pytest.fixture
def decimal_state() -> Iterator[DecimalFaultState]:
    with DecimalFaultState() as state:
        state.reset()
        yield state
        state.reset()


@pytest.fixture
def ambient_state(numpy_state: NumpyFaultState) -> Iterator[NumpyFaultState]:
    """Make a freshly installed numpy fault state the ambient one."""
    previous = set_fault_state(numpy_state)
    yield numpy_state
    set_fault_state(previous)
