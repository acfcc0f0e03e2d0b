from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError


def _require_shape(arr: np.ndarray, shape: Tuple[int, ...], *, name: str) -> np.ndarray:
    if arr.shape != shape:
        raise ConfigurationError(f"{name} must have shape {shape}, got {arr.shape}.")
    return arr


@dataclass(frozen=True)
class StateSpaceModel:
    """
    System matrices of a linear Gaussian state space model.

    ::

        z_{t+1} = CC + TT z_t + RR eps_t       (transition equation)
        y_t     = DD + ZZ z_t + eta_t          (measurement equation)

        eps_t ~ N(0, QQ),  eta_t = MM eps_t + u_t,  u_t ~ N(0, HH)

    ``MM`` loads the structural shocks into the measurement error; it
    defaults to zero, in which case shocks and measurement errors are
    uncorrelated.

    Scalars and vectors are promoted to arrays, so a univariate model can be
    written as ``StateSpaceModel(0.5, 1.0, 0.0, 1.0, 1.0, 0.0, 1.0)``.
    """

    TT: np.ndarray
    RR: np.ndarray
    CC: np.ndarray
    QQ: np.ndarray
    ZZ: np.ndarray
    DD: np.ndarray
    HH: np.ndarray
    MM: Optional[np.ndarray] = field(default=None)

    def __post_init__(self):
        TT = np.atleast_2d(np.asarray(self.TT, dtype=float))
        RR = np.atleast_2d(np.asarray(self.RR, dtype=float))
        CC = np.atleast_1d(np.asarray(self.CC, dtype=float)).reshape(-1)
        QQ = np.atleast_2d(np.asarray(self.QQ, dtype=float))
        ZZ = np.atleast_2d(np.asarray(self.ZZ, dtype=float))
        DD = np.atleast_1d(np.asarray(self.DD, dtype=float)).reshape(-1)
        HH = np.atleast_2d(np.asarray(self.HH, dtype=float))

        ns = TT.shape[0]
        neps = RR.shape[1]
        ny = ZZ.shape[0]

        _require_shape(TT, (ns, ns), name="TT")
        _require_shape(RR, (ns, neps), name="RR")
        _require_shape(CC, (ns,), name="CC")
        _require_shape(QQ, (neps, neps), name="QQ")
        _require_shape(ZZ, (ny, ns), name="ZZ")
        _require_shape(DD, (ny,), name="DD")
        _require_shape(HH, (ny, ny), name="HH")

        if self.MM is None:
            MM = np.zeros((ny, neps))
        else:
            MM = _require_shape(np.atleast_2d(np.asarray(self.MM, dtype=float)), (ny, neps), name="MM")

        for name, value in [("TT", TT), ("RR", RR), ("CC", CC), ("QQ", QQ),
                            ("ZZ", ZZ), ("DD", DD), ("HH", HH), ("MM", MM)]:
            object.__setattr__(self, name, value)

    @property
    def nstates(self) -> int:
        return self.TT.shape[0]

    @property
    def nshocks(self) -> int:
        return self.RR.shape[1]

    @property
    def nobs(self) -> int:
        return self.ZZ.shape[0]

    def system_covariances(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Covariances implied by the shock structure.

        Returns:
            RQR: Var(RR eps_t), the state innovation covariance
            HH: Var(eta_t), measurement error covariance including MM QQ MM'
            GG: Cov(RR eps_t, eta_t)
        """
        RQR = self.RR @ self.QQ @ self.RR.T
        RQR = 0.5 * (RQR + RQR.T)
        HH = self.HH + self.MM @ self.QQ @ self.MM.T
        HH = 0.5 * (HH + HH.T)
        GG = self.RR @ self.QQ @ self.MM.T
        return RQR, HH, GG

    def nonfinite_matrices(self) -> Tuple[str, ...]:
        """Names of the system matrices holding NaN or inf."""
        return tuple(name for name in ("TT", "RR", "CC", "QQ", "ZZ", "DD", "HH", "MM")
                     if not np.all(np.isfinite(getattr(self, name))))

    def conforms(self, other: "StateSpaceModel") -> bool:
        return (self.nstates == other.nstates
                and self.nshocks == other.nshocks
                and self.nobs == other.nobs)

    def log_lik(self, data, *args, **kwargs) -> float:
        """Log likelihood of ``data`` under this model (likelihood-only run)."""
        from .filters import kalman_filter

        kwargs.setdefault('allout', False)
        return kalman_filter(data, self, *args, **kwargs).log_likelihood

    def kf_everything(self, data, *args,
                      state_names: Optional[Sequence[str]] = None,
                      obs_names: Optional[Sequence[str]] = None,
                      **kwargs):
        """
        Run the full filter and return the per-period results as DataFrames.

        The index of the frames is the index of ``data`` when it is a pandas
        object, restricted to the periods after the presample.
        """
        from .data import observation_matrix
        from .filters import kalman_filter

        y, index, columns = observation_matrix(data)
        if obs_names is None:
            obs_names = columns

        kwargs['allout'] = True
        out = kalman_filter(y, self, *args, **kwargs)

        if index is not None:
            index = index[len(index) - out.marginal_loglh.size:]

        return out.to_frames(index=index, state_names=state_names, obs_names=obs_names)


__all__ = ["StateSpaceModel"]
