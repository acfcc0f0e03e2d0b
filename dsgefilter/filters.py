"""
Kalman filter for linear Gaussian state space models.

This code is loosely based on a routine originally copyright Federal Reserve
Bank of Atlanta and written by Iskander Karibzhanov.

The model is

::

    z_t = CC + TT z_{t-1} + RR eps_t       eps_t ~ N(0, QQ)
    y_t = DD + ZZ z_t + eta_t              eta_t = MM eps_t + u_t,  u_t ~ N(0, HH)

with system matrices that may switch at known dates (regimes). Observations
are stored ``Ny x T`` and missing entries are NaN; a missing entry only drops
its row from that period's measurement equation.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
from numba import jit
from scipy.linalg import cho_factor, cho_solve

from .data import observation_matrix
from .dlyap import initial_conditions
from .errors import ConfigurationError, DomainError, EmptyDataWarning, NumericalError
from .logging_config import get_logger
from .regimes import as_regimes
from .results import KalmanOutput, trim_presample
from .settings import FilterSettings, read_settings

logger = get_logger("filters")
period_logger = get_logger("filters.periods")

LOG2PI = np.log(2 * np.pi)


@dataclass
class FilterState:
    """Filtered mean ``z`` and covariance ``P`` carried between periods."""
    z: np.ndarray
    P: np.ndarray


class KalmanStep(NamedTuple):
    z_pred: np.ndarray
    P_pred: np.ndarray
    nonmissing: np.ndarray
    dy: np.ndarray
    std_dy: np.ndarray
    loglh: float


def kalman_step(state, model, y_t, covariances=None, period=None):
    """
    One forecast/update period.

    Args:
        state: FilterState holding z_{t-1|t-1}, P_{t-1|t-1}
        model: StateSpaceModel for the current regime
        y_t: Ny vector of observations, NaN where missing
        covariances: ``model.system_covariances()``, precomputed by callers
            looping over many periods
        period: period index used in error messages

    Returns:
        The FilterState z_{t|t}, P_{t|t} and the KalmanStep record of the
        forecast, prediction errors and the marginal log likelihood
        log p(y_t | y_1, ..., y_{t-1}).

    Raises:
        NumericalError: If the forecast covariance of the observables is not
            positive definite.
    """
    TT, CC, ZZ, DD = model.TT, model.CC, model.ZZ, model.DD
    RQR, HH, GG = model.system_covariances() if covariances is None else covariances

    nonmissing = ~np.isnan(y_t)
    nact = int(nonmissing.sum())

    # Forecast
    z = CC + TT @ state.z                  # z_{t|t-1}
    P = TT @ state.P @ TT.T + RQR          # P_{t|t-1}
    P = 0.5 * (P + P.T)

    if nact == 0:
        empty = np.zeros(0)
        return FilterState(z, P), KalmanStep(z, P, nonmissing, empty, empty, 0.0)

    ZZ_t = ZZ[nonmissing, :]
    GG_t = GG[:, nonmissing]
    HH_t = HH[np.ix_(nonmissing, nonmissing)]

    dy = y_t[nonmissing] - ZZ_t @ z - DD[nonmissing]
    where = "" if period is None else f" in period {period}"
    if not np.all(np.isfinite(dy)):
        logger.error(f"Prediction error is not finite{where}")
        raise NumericalError(f"Prediction error is not finite{where}: {dy}", period=period)

    ZG = ZZ_t @ GG_t
    V = ZZ_t @ P @ ZZ_t.T + ZG + ZG.T + HH_t    # Var(y_t | y_{1:t-1})
    V = 0.5 * (V + V.T)

    try:
        cV = cho_factor(V, lower=True)
    except (np.linalg.LinAlgError, ValueError) as e:
        logger.error(f"Forecast covariance of the observables is not positive definite{where}")
        raise NumericalError(
            f"Forecast covariance of the observables is not positive definite{where}: {e}",
            period=period) from e

    std_dy = dy / np.sqrt(np.diag(V))
    ddy = cho_solve(cV, dy)
    logdetV = 2.0 * np.sum(np.log(np.diag(cV[0])))

    loglh = -0.5 * logdetV - 0.5 * np.dot(dy, ddy) - 0.5 * nact * LOG2PI

    # Update
    Kt = P @ ZZ_t.T + GG_t
    z_filt = z + Kt @ ddy
    P_filt = P - Kt @ cho_solve(cV, Kt.T)
    P_filt = 0.5 * (P_filt + P_filt.T)

    return FilterState(z_filt, P_filt), KalmanStep(z, P, nonmissing, dy, std_dy, float(loglh))


def filter_regime(state, model, data, t0=0, out=None, first_period=0):
    """
    Filter one regime's block of observations.

    Args:
        state: FilterState at the end of the previous regime
        model: StateSpaceModel of this regime
        data: Ny x T_i block of observations
        t0: likelihood contributions of the first ``t0`` periods are not recorded
        out: KalmanOutput (typically a period view) receiving per-period results
        first_period: index of the block's first period in the full sample

    Returns:
        The FilterState after the last period and the vector of marginal log
        likelihoods (zero for the first ``t0`` periods).
    """
    covariances = model.system_covariances()
    nobs = data.shape[1]
    loglh = np.zeros(nobs) if out is None else out.marginal_loglh
    record = out is not None and out.allout
    log_periods = period_logger.isEnabledFor(logging.DEBUG)

    for t in range(nobs):
        state, step = kalman_step(state, model, data[:, t], covariances, period=first_period + t)

        if t >= t0:
            loglh[t] = step.loglh

        if log_periods:
            period_logger.debug(f"Period {first_period + t}: {int(step.nonmissing.sum())} observed, "
                                f"log likelihood {step.loglh:.6g}"
                                + ("" if t >= t0 else " (presample)"))

        if record:
            out.pred[:, t] = step.z_pred
            out.vpred[:, :, t] = step.P_pred
            out.yprederror[step.nonmissing, t] = step.dy
            out.ystdprederror[step.nonmissing, t] = step.std_dy
            out.filt[:, t] = state.z
            out.vfilt[:, :, t] = state.P

    return state, loglh


def regime_loglh_py(y, TT, CC, RQR, ZZ, DD, HH, GG, z0, P0, t0=0):
    ny, nobs = y.shape

    z = z0.copy()
    P = P0.copy()
    loglh = np.zeros(nobs)

    for i in range(nobs):
        z = CC + TT @ z
        P = TT @ P @ TT.T + RQR
        P = 0.5 * (P + P.T)

        not_missing = ~np.isnan(y[:, i])
        nact = not_missing.sum()
        if nact == 0:
            continue

        ZZ_t = ZZ[not_missing, :]
        GG_t = GG[:, not_missing]
        HH_t = HH[not_missing, :][:, not_missing]

        nut = y[:, i][not_missing] - ZZ_t @ z - DD[not_missing]

        ZG = ZZ_t @ GG_t
        Ft = ZZ_t @ P @ ZZ_t.T + ZG + ZG.T + HH_t
        Ft = 0.5 * (Ft + Ft.T)

        Lt = np.linalg.cholesky(Ft)
        LtT = np.ascontiguousarray(Lt.T)
        dFt = 2.0 * np.sum(np.log(np.diag(Lt)))
        iFtnut = np.linalg.solve(LtT, np.linalg.solve(Lt, nut))

        if i >= t0:
            loglh[i] = (
                - 0.5 * nact * np.log(2 * np.pi)
                - 0.5 * dFt
                - 0.5 * np.dot(nut, iFtnut)
            )

        Kt = P @ ZZ_t.T + GG_t
        z = z + Kt @ iFtnut
        P = P - Kt @ np.linalg.solve(LtT, np.linalg.solve(Lt, np.ascontiguousarray(Kt.T)))
        P = 0.5 * (P + P.T)

    return z, P, loglh


regime_loglh = jit(nopython=True)(regime_loglh_py)


def _filter_regime_compiled(state, model, data, t0, loglh_out, periods):
    RQR, HH, GG = model.system_covariances()
    args = [np.ascontiguousarray(a, dtype=np.float64) for a in
            (data, model.TT, model.CC, RQR, model.ZZ, model.DD, HH, GG, state.z, state.P)]
    try:
        z, P, loglh = regime_loglh(*args, t0)
    except np.linalg.LinAlgError as e:
        logger.error(f"Forecast covariance of the observables is not positive definite "
                     f"in periods {periods.start}-{periods.stop - 1}")
        raise NumericalError(
            f"Forecast covariance of the observables is not positive definite in periods "
            f"{periods.start}-{periods.stop - 1}: {e}") from e

    loglh_out[:] = loglh
    return FilterState(z, P)


def _initial_state(z0, P0, model, settings):
    if z0 is None or P0 is None or np.size(z0) == 0 or np.size(P0) == 0:
        return initial_conditions(model, settings.diffuse_scale)

    ns = model.nstates
    z0 = np.atleast_1d(np.asarray(z0, dtype=float)).reshape(-1)
    P0 = np.atleast_2d(np.asarray(P0, dtype=float))
    if z0.shape != (ns,):
        raise ConfigurationError(f"z0 must have shape ({ns},), got {z0.shape}.")
    if P0.shape != (ns, ns):
        raise ConfigurationError(f"P0 must have shape ({ns}, {ns}), got {P0.shape}.")
    if not (np.all(np.isfinite(z0)) and np.all(np.isfinite(P0))):
        raise ConfigurationError("z0 and P0 must be finite.")
    return z0, P0


def kalman_filter(data, model_or_regimes, z0=None, P0=None, allout=None,
                  n_presample_periods=None, settings=None):
    """
    Run the Kalman filter over all periods and regimes.

    Args:
        data: Ny x T observations (numpy), or a periods x observables
            DataFrame. Missing values are NaN.
        model_or_regimes: a StateSpaceModel used in every period, or a
            sequence of ``(periods, StateSpaceModel)`` pairs whose period
            ranges partition ``range(T)`` in order.
        z0: initial state. Computed from the first regime when omitted.
        P0: initial state covariance. Computed from the first regime when omitted.
        allout: record per-period outputs. Overrides ``settings.allout``.
        n_presample_periods: leading periods filtered but dropped from the
            likelihood and every output. Overrides the settings.
        settings: FilterSettings, or anything :func:`read_settings` accepts.

    Returns:
        KalmanOutput. ``zend``/``Pend`` are the filtered state and covariance
        after period T. With a presample and full output, ``z0``/``P0`` are
        the filtered values at the end of the presample.

    Raises:
        ConfigurationError: The regimes, matrices, initial state or presample
            do not fit the data.
        NumericalError: The forecast covariance of the observables is not
            positive definite, or the likelihood is not finite.
        DomainError: No observation in any period and
            ``settings.on_empty_data == "raise"``.

    Notes:
        When z0 and P0 are omitted and every eigenvalue of the first regime's
        TT lies inside the unit circle,

        ::

            z0 = (I - TT) \\ CC
            P0 = TT P0 TT' + RR QQ RR'

        otherwise ``z0 = CC`` and ``P0 = 1e6 * I``. State and covariance
        are carried from one regime to the next without reinitialization.
    """
    if not isinstance(settings, FilterSettings):
        settings = read_settings(settings)
    settings = settings.replace(allout=allout, n_presample_periods=n_presample_periods)

    y, _, _ = observation_matrix(data)
    ny, nperiods = y.shape

    regimes = as_regimes(model_or_regimes, nperiods)
    first = regimes[0].model
    if ny != first.nobs:
        raise ConfigurationError(f"Data has {ny} observables, the model has {first.nobs}.")

    for i, (periods, model) in enumerate(regimes):
        bad = model.nonfinite_matrices()
        if bad:
            logger.error(f"Regime {i} has non-finite system matrices: {', '.join(bad)}")
            raise NumericalError(f"Regime {i} has non-finite system matrices: {', '.join(bad)}",
                                 period=periods.start)

    n_presample = settings.n_presample_periods
    if n_presample >= nperiods:
        raise ConfigurationError(
            f"n_presample_periods ({n_presample}) must be smaller than the number of periods ({nperiods}).")

    z0, P0 = _initial_state(z0, P0, first, settings)

    logger.debug(f"Filtering {nperiods} periods, {ny} observables, {first.nstates} states, "
                 f"{len(regimes)} regime(s), presample {n_presample}")

    out = KalmanOutput.allocate(first.nstates, ny, nperiods, settings.allout)
    state = FilterState(z0.copy(), P0.copy())
    compiled = settings.use_numba and not settings.allout

    for i, (periods, model) in enumerate(regimes):
        block = y[:, periods.start:periods.stop]
        t0 = max(n_presample - periods.start, 0)
        view = out.period_view(periods)

        if compiled:
            state = _filter_regime_compiled(state, model, block, t0, view.marginal_loglh, periods)
        else:
            state, _ = filter_regime(state, model, block, t0=t0, out=view, first_period=periods.start)

        if i + 1 < len(regimes):
            logger.debug(f"Regime {i} ends at period {periods.stop - 1}, handing state to regime {i + 1}")

    out.zend, out.Pend = state.z, state.P
    out.z0, out.P0 = z0, P0
    out = trim_presample(out, n_presample)

    if not np.isfinite(out.log_likelihood):
        raise NumericalError(f"Log likelihood is not finite: {out.log_likelihood}")

    if np.isnan(y).all():
        msg = "Every observable is missing in every period, the log likelihood is zero"
        if settings.on_empty_data == "raise":
            raise DomainError(msg, output=out)
        logger.warning(msg)
        warnings.warn(msg, EmptyDataWarning)

    return out


__all__ = [
    "FilterState",
    "KalmanStep",
    "kalman_step",
    "filter_regime",
    "regime_loglh",
    "regime_loglh_py",
    "kalman_filter",
]
