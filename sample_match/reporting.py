"""
Fault reporters invoked when a comparison observes an arithmetic fault.

A reporter is any zero-argument callable. It may only produce a side effect:
whatever it returns is discarded, so it cannot turn a failed comparison into a
match.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from beartype import beartype

from sample_match.logs.structlog import logger

FaultReporter: TypeAlias = Callable[[], object]

FAULT_LABEL: str = "Error:"
FAULT_MESSAGE: str = f"{FAULT_LABEL} - A math error occurred. Returning no match found."


@beartype
def print_fault_message() -> None:
    """Default reporter: write the fault message to standard output."""
    print(FAULT_MESSAGE)


@beartype
def log_fault() -> None:
    logger.warning("Arithmetic fault during sample comparison", message=FAULT_MESSAGE)


class FaultCounter:
    """Reporter that counts how many times it has been invoked."""

    def __init__(self) -> None:
        self.calls: int = 0

    def __call__(self) -> None:
        self.calls += 1
