"""
Regime partitions.

A regime is a contiguous block of periods sharing one set of system
matrices. Partitions are given as Python ranges over 0-based period
indices and must tile ``range(T)`` exactly, in order.
"""

from collections import namedtuple
from typing import List

from .StateSpaceModel import StateSpaceModel
from .errors import ConfigurationError

Regime = namedtuple('Regime', ['periods', 'model'])


def _as_range(periods, nperiods: int) -> range:
    if isinstance(periods, range):
        return periods
    if isinstance(periods, slice):
        start, stop, step = periods.start, periods.stop, periods.step
    else:
        try:
            start, stop = periods
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Regime periods must be a range, a slice or a (start, stop) pair, got {periods!r}") from e
        step = None

    # open ends run to the edges of the sample
    try:
        return range(0 if start is None else int(start),
                     nperiods if stop is None else int(stop),
                     1 if step is None else int(step))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Regime periods must be integers, got {periods!r}") from e


def validate_regimes(regimes: List[Regime], nperiods: int) -> None:
    """
    Check that ``regimes`` partitions ``range(nperiods)`` and that every
    regime's matrices conform to the first regime's.

    Raises:
        ConfigurationError: On the first violation found.
    """
    if not regimes:
        raise ConfigurationError("At least one regime is required.")

    expected_start = 0
    first = regimes[0].model
    for i, (periods, model) in enumerate(regimes):
        if not isinstance(model, StateSpaceModel):
            raise ConfigurationError(f"Regime {i} must hold a StateSpaceModel, got {type(model).__name__}")
        if periods.step != 1:
            raise ConfigurationError(f"Regime {i} periods must be contiguous, got step {periods.step}")
        if len(periods) == 0:
            raise ConfigurationError(f"Regime {i} is empty: {periods}")
        if periods.start != expected_start:
            raise ConfigurationError(
                f"Regime {i} must start at period {expected_start}, got {periods.start}")
        if not model.conforms(first):
            raise ConfigurationError(
                f"Regime {i} has dimensions (states={model.nstates}, shocks={model.nshocks}, "
                f"observables={model.nobs}), regime 0 has (states={first.nstates}, "
                f"shocks={first.nshocks}, observables={first.nobs})")
        expected_start = periods.stop

    if expected_start != nperiods:
        raise ConfigurationError(f"Regimes cover periods 0 to {expected_start}, data has {nperiods} periods")


def as_regimes(model_or_regimes, nperiods: int) -> List[Regime]:
    """
    Normalize a single model or a sequence of ``(periods, model)`` pairs into
    a validated list of :class:`Regime`.
    """
    if isinstance(model_or_regimes, StateSpaceModel):
        regimes = [Regime(range(nperiods), model_or_regimes)]
    else:
        try:
            pairs = [(periods, model) for periods, model in model_or_regimes]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                "Expected a StateSpaceModel or a sequence of (periods, StateSpaceModel) pairs") from e
        regimes = [Regime(_as_range(periods, nperiods), model) for periods, model in pairs]

    validate_regimes(regimes, nperiods)
    return regimes


__all__ = ["Regime", "as_regimes", "validate_regimes"]
