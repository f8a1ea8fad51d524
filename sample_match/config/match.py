"""
Matcher configuration: which arithmetic backend records faults, which fault
classes fail a comparison, and how the package logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path

from beartype import beartype

from sample_match.config import ConfigError, load_from_yaml
from sample_match.faults import (
    BaseFaultState,
    DecimalFaultState,
    FaultClass,
    FaultState,
    ManualFaultState,
    NumpyFaultState,
    set_fault_state,
)
from sample_match.logs.structlog import configure as configure_logging
from sample_match.logs.structlog import logger
from sample_match.matching import match as match_samples
from sample_match.reporting import FaultReporter, print_fault_message
from sample_match.types import SampleSequence, Threshold, beartype_numeric

_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class FaultBackend(Enum):
    """Arithmetic environment used to detect faults."""

    NUMPY = "numpy"
    DECIMAL = "decimal"
    MANUAL = "manual"


@dataclass(frozen=True)
class MatchConfig:
    backend: FaultBackend = FaultBackend.NUMPY
    watched_faults: frozenset[FaultClass] = field(default_factory=lambda: frozenset({FaultClass.INVALID}))
    log_level: str = "INFO"
    service_name: str = "sample_match"

    @classmethod
    @beartype
    def from_mapping(cls, data: Mapping[str, object]) -> MatchConfig:
        """
        Build a config from a parsed mapping, applying defaults for missing keys.

        Raises:
            ConfigError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown match config keys: {', '.join(unknown)}")

        raw_backend = data.get("backend", FaultBackend.NUMPY.value)
        try:
            backend = FaultBackend(raw_backend)
        except ValueError as err:
            raise ConfigError(f"Unknown fault backend: {raw_backend}") from err

        raw_watched = data.get("watched_faults", [FaultClass.INVALID.value])
        if not isinstance(raw_watched, list):
            raise ConfigError("watched_faults must be a list")
        try:
            watched = frozenset(FaultClass(value) for value in raw_watched)
        except ValueError as err:
            raise ConfigError(f"Unknown fault class in watched_faults: {raw_watched}") from err

        log_level = str(data.get("log_level", "INFO")).upper()
        if log_level not in _LOG_LEVELS:
            raise ConfigError(f"Invalid log_level: {log_level}")

        service_name = str(data.get("service_name", "sample_match"))
        return cls(backend=backend, watched_faults=watched, log_level=log_level, service_name=service_name)

    @beartype_numeric
    def match(
        self,
        test: SampleSequence,
        reference: SampleSequence,
        bins: int,
        threshold: Threshold,
        *,
        on_fault: FaultReporter = print_fault_message,
        fault_state: FaultState | None = None,
    ) -> bool:
        """Match two sequences, failing on any of this config's watched faults."""
        return match_samples(
            test,
            reference,
            bins,
            threshold,
            on_fault=on_fault,
            fault_state=fault_state,
            watched=self.watched_faults,
        )


@beartype
def load_match_config(path: str | Path, section: str | None = None) -> MatchConfig:
    return MatchConfig.from_mapping(load_from_yaml(path, section))


@beartype
def build_fault_state(config: MatchConfig) -> BaseFaultState:
    """
    Create the fault state selected by ``config.backend``.

    The state is returned uninstalled; call ``install`` or use it as a
    context manager.
    """
    if config.backend == FaultBackend.NUMPY:
        return NumpyFaultState()
    if config.backend == FaultBackend.DECIMAL:
        return DecimalFaultState()
    return ManualFaultState()


@beartype
def apply_match_config(config: MatchConfig, log_dir: str | Path | None = None) -> BaseFaultState:
    """
    Configure logging and make the configured fault state the ambient one.

    The state is installed in the calling thread; other threads install it on
    their first ``get_fault_state`` call.
    """
    configure_logging(service_name=config.service_name, log_level=config.log_level, log_dir=log_dir)
    state = build_fault_state(config)
    state.install()
    set_fault_state(state)
    logger.info(
        "Applied match config",
        backend=config.backend.value,
        watched_faults=sorted(fault.value for fault in config.watched_faults),
    )
    return state
