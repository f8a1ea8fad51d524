import random
import threading

import numpy as np
import pytest
from beartype.roar import BeartypeCallHintParamViolation
from hypothesis import given
from hypothesis import strategies as st

from sample_match.faults import FaultClass, ManualFaultState, NumpyFaultState, get_fault_state
from sample_match.matching import elements_match, match
from sample_match.reporting import FAULT_MESSAGE, FaultCounter
from sample_match.samples import add_jitter, zeros

TEST = [1.0, 2.0, 1.5, -3]
REFERENCE = [0.4, 2.2, 0.9, -2.8]

samples_st = st.lists(st.floats(min_value=-1e6, max_value=1e6, allow_nan=False), min_size=0, max_size=30)
thresholds_st = st.floats(min_value=0.0, max_value=1e7, allow_nan=False)


class RecordingFaultState(ManualFaultState):
    """Manual fault state that records every compared pair."""

    def __init__(self) -> None:
        super().__init__()
        self.pairs: list[tuple[float, float]] = []

    def abs_diff(self, a: float, b: float) -> float:
        self.pairs.append((a, b))
        return super().abs_diff(a, b)


def test_elements_match_inclusive_threshold(manual_state):
    assert elements_match(1.0, 1.5, 0.5, FaultCounter(), manual_state)
    assert not elements_match(1.0, 1.5, 0.49, FaultCounter(), manual_state)


def test_elements_match_zero_threshold_requires_identical_values(manual_state):
    assert elements_match(2.5, 2.5, 0.0, FaultCounter(), manual_state)
    assert not elements_match(2.5, np.nextafter(2.5, 3.0), 0.0, FaultCounter(), manual_state)


def test_elements_match_fault_overrides_equal_values(manual_state):
    counter = FaultCounter()
    manual_state.raise_fault(FaultClass.INVALID)
    assert not elements_match(1.0, 1.0, 10.0, counter, manual_state)
    assert counter.calls == 1


def test_elements_match_ignores_reporter_return_value(manual_state):
    manual_state.raise_fault(FaultClass.INVALID)
    assert elements_match(1.0, 1.0, 1.0, lambda: True, manual_state) is False


def test_elements_match_unwatched_fault_is_ignored(manual_state):
    counter = FaultCounter()
    manual_state.raise_fault(FaultClass.UNDERFLOW)
    assert elements_match(1.0, 1.0, 0.0, counter, manual_state)
    assert counter.calls == 0


def test_elements_match_watched_fault_classes(manual_state):
    manual_state.raise_fault(FaultClass.OVERFLOW)
    watched = {FaultClass.INVALID, FaultClass.OVERFLOW}
    assert not elements_match(1.0, 1.0, 0.0, FaultCounter(), manual_state, watched)


def test_elements_match_detects_fault_from_own_subtraction(numpy_state):
    counter = FaultCounter()
    assert not elements_match(float("inf"), float("inf"), 1.0, counter, numpy_state)
    assert counter.calls == 1


def test_elements_match_nan_sample_without_fault_does_not_match(manual_state):
    counter = FaultCounter()
    assert not elements_match(float("nan"), 1.0, 1e9, counter, manual_state)
    assert counter.calls == 0


def test_match_identical_arrays(manual_state):
    assert match(TEST, TEST, 4, 0.5, fault_state=manual_state)
    assert match(REFERENCE, REFERENCE, 4, 0.5, fault_state=manual_state)
    assert match(TEST, TEST, 4, 0, fault_state=manual_state)


@pytest.mark.parametrize(
    "threshold, expected",
    [(0, False), (0.1, False), (0.5, False), (0.59, False), (0.6, True), (1, True)],
)
def test_match_against_reference(manual_state, threshold, expected):
    assert match(TEST, REFERENCE, 4, threshold, fault_state=manual_state) is expected


def test_match_zero_bins_always_matches(manual_state):
    assert match([], [], 0, 0.0, fault_state=manual_state)
    assert match([1.0], [5.0], 0, 0.0, fault_state=manual_state)


def test_match_compares_only_declared_bins(manual_state):
    assert match([1.0, 2.0, 3.0], [1.0, 2.0, 99.0], 2, 0.0, fault_state=manual_state)


def test_match_accepts_numpy_arrays(manual_state):
    test = np.array(TEST, dtype=np.float64)
    reference = np.array(REFERENCE, dtype=np.float64)
    assert match(test, reference, 4, 0.6, fault_state=manual_state)
    assert not match(test, reference, 4, 0.59, fault_state=manual_state)


def test_match_short_circuits_on_first_mismatch():
    state = RecordingFaultState()
    assert not match([1.0, 5.0, 3.0, 4.0], [1.0, 2.0, 3.0, 4.0], 4, 0.5, fault_state=state)
    assert state.pairs == [(1.0, 1.0), (5.0, 2.0)]


def test_match_short_circuits_on_fault():
    state = RecordingFaultState()
    state.raise_fault(FaultClass.INVALID)
    counter = FaultCounter()
    assert not match([1.0, 2.0, 3.0], [1.0, 2.0, 3.0], 3, 0.0, on_fault=counter, fault_state=state)
    assert len(state.pairs) == 1
    assert counter.calls == 1


def test_match_fault_raised_elsewhere_fails_comparison(ambient_state, capsys):
    assert match([1, 2, 3], [1, 2, 3], 3, 0)

    np.sqrt(np.float64(-1.0))

    assert not match([1, 2, 3], [1, 2, 3], 3, 0)
    assert not match(TEST, REFERENCE, 4, 1)
    assert FAULT_MESSAGE in capsys.readouterr().out


def test_match_recovers_after_reset(ambient_state):
    np.sqrt(np.float64(-1.0))
    assert not match([1, 2, 3], [1, 2, 3], 3, 0, on_fault=FaultCounter())

    ambient_state.reset()

    assert match([1, 2, 3], [1, 2, 3], 3, 0)
    assert not match(TEST, REFERENCE, 4, 0)


def test_match_with_decimal_state(decimal_state):
    assert match(TEST, REFERENCE, 4, 0.6, fault_state=decimal_state)
    assert not match(TEST, REFERENCE, 4, 0.59, fault_state=decimal_state)
    assert not match([float("inf")], [float("inf")], 1, 1.0, on_fault=FaultCounter(), fault_state=decimal_state)
    assert not match([1.0], [1.0], 1, 1.0, on_fault=FaultCounter(), fault_state=decimal_state)


def test_match_jittered_samples(manual_state):
    rng = random.Random(2015)
    for _ in range(50):
        reference = add_jitter(zeros(100), 1.0, rng)
        test = add_jitter(reference, 1.0, rng)

        assert match(test, reference, 100, 1.5, fault_state=manual_state)
        assert match(test, reference, 100, 1, fault_state=manual_state)
        assert not match(test, reference, 100, 0.8, fault_state=manual_state)
        assert not match(test, reference, 100, 0, fault_state=manual_state)


def test_match_jittered_samples_with_fault_raised(manual_state):
    rng = random.Random(2015)
    manual_state.raise_fault()
    reference = add_jitter(zeros(100), 1.0, rng)
    test = add_jitter(reference, 1.0, rng)
    for threshold in (1.5, 1, 0.8, 0):
        assert not match(test, reference, 100, threshold, on_fault=FaultCounter(), fault_state=manual_state)


@pytest.mark.parametrize("reporter", ["Error: math", 0.0, 1, None, [print]])
def test_match_rejects_non_callable_reporter(manual_state, reporter):
    with pytest.raises(BeartypeCallHintParamViolation):
        match(TEST, TEST, 4, 0.0, on_fault=reporter, fault_state=manual_state)


def test_elements_match_rejects_non_callable_reporter(manual_state):
    manual_state.raise_fault()
    with pytest.raises(BeartypeCallHintParamViolation):
        elements_match(1.0, 2.0, 0.5, "not a function", manual_state)


def test_match_reporter_exception_propagates(manual_state):
    def failing_reporter() -> None:
        raise RuntimeError("reporter failed")

    manual_state.raise_fault()
    with pytest.raises(RuntimeError, match="reporter failed"):
        match(TEST, TEST, 4, 0.0, on_fault=failing_reporter, fault_state=manual_state)


@given(samples_st, thresholds_st)
def test_match_reflexive(samples, threshold):
    state = ManualFaultState()
    assert match(samples, samples, len(samples), threshold, fault_state=state)


@given(samples_st, thresholds_st)
def test_match_reflexive_numpy_arithmetic(samples, threshold):
    with NumpyFaultState() as state:
        assert match(samples, samples, len(samples), threshold, fault_state=state)


@given(
    st.lists(
        st.tuples(
            st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
            st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
        ),
        max_size=30,
    ),
    thresholds_st,
    thresholds_st,
)
def test_match_threshold_monotonic(pairs, t1, t2):
    low, high = sorted((t1, t2))
    test = [a for a, _ in pairs]
    reference = [b for _, b in pairs]
    state = ManualFaultState()
    if match(test, reference, len(pairs), low, fault_state=state):
        assert match(test, reference, len(pairs), high, fault_state=state)


@given(
    st.lists(
        st.tuples(
            st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
            st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
        ),
        min_size=1,
        max_size=30,
    )
)
def test_match_boundary_is_inclusive(pairs):
    test = [a for a, _ in pairs]
    reference = [b for _, b in pairs]
    threshold = max(abs(a - b) for a, b in pairs)
    assert match(test, reference, len(pairs), threshold, fault_state=ManualFaultState())


@given(samples_st, samples_st, thresholds_st)
def test_match_fault_overrides_everything(test, reference, threshold):
    state = ManualFaultState()
    state.raise_fault(FaultClass.INVALID)
    bins = min(len(test), len(reference))
    if bins == 0:
        return
    counter = FaultCounter()
    assert not match(test, reference, bins, threshold, on_fault=counter, fault_state=state)
    assert not match(test, test, len(test), threshold, on_fault=counter, fault_state=state)
    assert counter.calls == 2


def test_match_fails_after_fault_in_worker_thread(ambient_state):
    results: list[bool] = []

    def worker():
        get_fault_state()
        np.sqrt(np.float64(-1.0))
        results.append(match([1.0, 2.0], [1.0, 2.0], 2, 0.0, on_fault=FaultCounter()))

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert results == [False]
    assert match([1.0, 2.0], [1.0, 2.0], 2, 0.0)
