"""
Conservative pointwise comparison of sample sequences.

Two samples match when their absolute difference is at most the threshold,
unless a watched fault flag is raised in the arithmetic environment, in which
case they never match. The flag is read after the subtraction, so a fault
raised by the subtraction itself and a fault left behind by unrelated earlier
code are indistinguishable.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Final

from sample_match.faults import FaultClass, FaultState, get_fault_state
from sample_match.logs.structlog import logger
from sample_match.reporting import FaultReporter, print_fault_message
from sample_match.types import Sample, SampleSequence, Threshold, beartype_numeric

DEFAULT_WATCHED_FAULTS: Final[frozenset[FaultClass]] = frozenset({FaultClass.INVALID})


@beartype_numeric
def elements_match(
    a: Sample,
    b: Sample,
    threshold: Threshold,
    on_fault: FaultReporter,
    fault_state: FaultState | None = None,
    watched: Collection[FaultClass] = DEFAULT_WATCHED_FAULTS,
) -> bool:
    """
    Check whether two samples match within ``threshold`` (inclusive).

    Args:
        a: First sample.
        b: Other sample.
        threshold: Greatest acceptable absolute difference.
        on_fault: Reporter invoked when a watched fault flag is raised.
        fault_state: Arithmetic environment; the ambient one when None.
        watched: Fault classes that force a non-match.

    Returns:
        False whenever a watched fault is raised, otherwise ``|a - b| <= threshold``.
    """
    state: FaultState = fault_state if fault_state is not None else get_fault_state()
    diff: float = state.abs_diff(a, b)
    faults = [fault for fault in watched if state.is_raised(fault)]
    if faults:
        logger.debug("Arithmetic fault raised, reporting no match", faults=[f.value for f in faults])
        on_fault()
        return False
    return diff <= threshold


@beartype_numeric
def match(
    test: SampleSequence,
    reference: SampleSequence,
    bins: int,
    threshold: Threshold,
    *,
    on_fault: FaultReporter = print_fault_message,
    fault_state: FaultState | None = None,
    watched: Collection[FaultClass] = DEFAULT_WATCHED_FAULTS,
) -> bool:
    """
    Check whether the first ``bins`` samples of two sequences all match.

    Both sequences must hold at least ``bins`` samples. Comparison stops at
    the first non-matching index. A raised watched fault flag makes every
    comparison fail, even of a sequence against itself, until the flag is
    reset.
    """
    state: FaultState = fault_state if fault_state is not None else get_fault_state()
    for i in range(bins):
        if not elements_match(test[i], reference[i], threshold, on_fault, state, watched):
            logger.debug("Samples do not match", index=i, bins=bins, threshold=threshold)
            return False
    return True
