"""Conservative tolerance matching of floating-point sample sequences."""

from sample_match import faults, matching, reporting, samples
from sample_match.faults import (
    BaseFaultState,
    DecimalFaultState,
    FaultClass,
    FaultState,
    ManualFaultState,
    NumpyFaultState,
    get_fault_state,
    reset_fault_state,
    set_fault_state,
)
from sample_match.matching import DEFAULT_WATCHED_FAULTS, elements_match, match
from sample_match.reporting import (
    FAULT_MESSAGE,
    FaultCounter,
    FaultReporter,
    log_fault,
    print_fault_message,
)

__all__ = [
    "DEFAULT_WATCHED_FAULTS",
    "FAULT_MESSAGE",
    "BaseFaultState",
    "DecimalFaultState",
    "FaultClass",
    "FaultCounter",
    "FaultReporter",
    "FaultState",
    "ManualFaultState",
    "NumpyFaultState",
    "elements_match",
    "faults",
    "get_fault_state",
    "log_fault",
    "match",
    "matching",
    "print_fault_message",
    "reporting",
    "reset_fault_state",
    "samples",
    "set_fault_state",
]
