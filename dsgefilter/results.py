from __future__ import annotations

import warnings
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .errors import ConfigurationError


def _rms(errors: np.ndarray) -> np.ndarray:
    errors = np.atleast_2d(np.asarray(errors, dtype=float))
    if errors.shape[1] == 0:
        return np.full(errors.shape[0], np.nan)
    with warnings.catch_warnings():
        # rows that are never observed give NaN
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.sqrt(np.nanmean(errors**2, axis=1))


def rmse(yprederror: np.ndarray) -> np.ndarray:
    """Root mean squared prediction error of each observable over time."""
    return _rms(yprederror)


def rmsd(ystdprederror: np.ndarray) -> np.ndarray:
    """Root mean squared standardized prediction error of each observable over time."""
    return _rms(ystdprederror)


@dataclass
class KalmanOutput:
    """
    Results of a Kalman filter run.

    Attributes:
        marginal_loglh: log p(y_t | y_1, ..., y_{t-1}) for each main sample period
        zend: final filtered state z_{T|T}
        Pend: final filtered state covariance P_{T|T}
        z0: initial state, or the last presample filtered state when a
            presample is discarded
        P0: covariance matching ``z0``
        pred: Nz x T one-step predicted states z_{t|t-1}
        vpred: Nz x Nz x T covariances P_{t|t-1}
        filt: Nz x T filtered states z_{t|t}
        vfilt: Nz x Nz x T covariances P_{t|t}
        yprederror: Ny x T prediction errors y_t - y_{t|t-1}, NaN when y_t is missing
        ystdprederror: Ny x T prediction errors divided by their standard deviation
        first_period: index of the first period held, in the full sample

    The per-period arrays are ``None`` for likelihood-only runs.
    """

    marginal_loglh: np.ndarray
    zend: Optional[np.ndarray] = None
    Pend: Optional[np.ndarray] = None
    z0: Optional[np.ndarray] = None
    P0: Optional[np.ndarray] = None
    pred: Optional[np.ndarray] = None
    vpred: Optional[np.ndarray] = None
    filt: Optional[np.ndarray] = None
    vfilt: Optional[np.ndarray] = None
    yprederror: Optional[np.ndarray] = None
    ystdprederror: Optional[np.ndarray] = None
    first_period: int = 0

    @classmethod
    def allocate(cls, nstates: int, nobs: int, nperiods: int, allout: bool = True) -> "KalmanOutput":
        if not allout:
            return cls(marginal_loglh=np.zeros(nperiods))
        return cls(
            marginal_loglh=np.zeros(nperiods),
            pred=np.zeros((nstates, nperiods)),
            vpred=np.zeros((nstates, nstates, nperiods)),
            filt=np.zeros((nstates, nperiods)),
            vfilt=np.zeros((nstates, nstates, nperiods)),
            yprederror=np.full((nobs, nperiods), np.nan),
            ystdprederror=np.full((nobs, nperiods), np.nan),
        )

    @property
    def allout(self) -> bool:
        return self.pred is not None

    @property
    def nperiods(self) -> int:
        return self.marginal_loglh.size

    @property
    def log_likelihood(self) -> float:
        return float(np.sum(self.marginal_loglh))

    @property
    def rmse(self) -> Optional[np.ndarray]:
        return None if self.yprederror is None else rmse(self.yprederror)

    @property
    def rmsd(self) -> Optional[np.ndarray]:
        return None if self.ystdprederror is None else rmsd(self.ystdprederror)

    def period_view(self, periods) -> "KalmanOutput":
        """
        Output restricted to a contiguous block of periods.

        The arrays of the returned object are views, so filling them fills
        this object.
        """
        if isinstance(periods, range):
            periods = slice(periods.start, periods.stop)

        def take(a):
            return None if a is None else a[..., periods]

        return replace(
            self,
            marginal_loglh=take(self.marginal_loglh),
            pred=take(self.pred),
            vpred=take(self.vpred),
            filt=take(self.filt),
            vfilt=take(self.vfilt),
            yprederror=take(self.yprederror),
            ystdprederror=take(self.ystdprederror),
            first_period=self.first_period + (periods.start or 0),
        )

    def to_frames(self, index=None,
                  state_names: Optional[Sequence[str]] = None,
                  obs_names: Optional[Sequence[str]] = None):
        """
        Per-period results as a dictionary of DataFrames indexed by period.

        Without an ``index`` the rows are labelled with their period numbers
        in the full sample, so a trimmed presample shifts the labels.
        """
        if index is None:
            index = pd.RangeIndex(self.first_period, self.first_period + self.nperiods)

        results = {}
        results['log_lik'] = pd.DataFrame(self.marginal_loglh, columns=['log_lik'], index=index)
        if not self.allout:
            return results

        if state_names is None:
            state_names = ['state_' + str(i) for i in range(self.filt.shape[0])]
        if obs_names is None:
            obs_names = ['obs_' + str(i) for i in range(self.yprederror.shape[0])]

        results['predicted_states'] = pd.DataFrame(self.pred.T, columns=state_names, index=index)
        results['filtered_states'] = pd.DataFrame(self.filt.T, columns=state_names, index=index)
        results['prediction_errors'] = pd.DataFrame(self.yprederror.T, columns=obs_names, index=index)
        results['standardized_prediction_errors'] = pd.DataFrame(self.ystdprederror.T, columns=obs_names,
                                                                 index=index)
        return results


def trim_presample(out: KalmanOutput, n_presample_periods: int) -> KalmanOutput:
    """
    Drop the first ``n_presample_periods`` periods from every output.

    With full output, ``z0`` and ``P0`` are reassigned to the filtered state
    and covariance at the end of the presample.
    """
    n = n_presample_periods
    if n == 0:
        return out
    if not 0 < n < out.nperiods:
        raise ConfigurationError(
            f"n_presample_periods must be smaller than the number of periods ({out.nperiods}), got {n}")

    mainsample = slice(n, None)

    def take(a):
        return None if a is None else a[..., mainsample].copy()

    trimmed = replace(
        out,
        marginal_loglh=out.marginal_loglh[mainsample].copy(),
        pred=take(out.pred),
        vpred=take(out.vpred),
        filt=take(out.filt),
        vfilt=take(out.vfilt),
        yprederror=take(out.yprederror),
        ystdprederror=take(out.ystdprederror),
        first_period=out.first_period + n,
    )

    if out.allout:
        trimmed.z0 = out.filt[:, n - 1].copy()
        trimmed.P0 = out.vfilt[:, :, n - 1].copy()

    return trimmed


__all__ = ["KalmanOutput", "trim_presample", "rmse", "rmsd"]
