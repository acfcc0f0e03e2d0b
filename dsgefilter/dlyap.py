import numpy as np
from scipy.linalg import solve_discrete_lyapunov

from .errors import NumericalError
from .logging_config import get_logger

logger = get_logger("dlyap")

DIFFUSE_SCALE = 1e6


def dlyap(TT, RQR):
    """
    Solve the discrete Lyapunov equation ``P = TT P TT' + RQR``.

    Returns ``(P, info)`` where ``info`` is 0 on success and 1 when the
    solution is not finite.
    """
    X = solve_discrete_lyapunov(TT, RQR)
    X = TT.dot(X).dot(TT.T) + RQR
    X = 0.5 * (X + X.T)

    info = 0 if np.all(np.isfinite(X)) else 1
    return X, info


def is_stationary(TT):
    """True when every eigenvalue of ``TT`` lies strictly inside the unit circle."""
    if TT.size == 0:
        return True
    if not np.all(np.isfinite(TT)):
        raise NumericalError("Transition matrix is not finite, its eigenvalues are undefined")
    return bool(np.all(np.abs(np.linalg.eigvals(TT)) < 1.0))


def diffuse_conditions(model, diffuse_scale=DIFFUSE_SCALE):
    return model.CC.copy(), diffuse_scale * np.eye(model.nstates)


def initial_conditions(model, diffuse_scale=DIFFUSE_SCALE):
    """
    Unconditional mean and covariance of the state implied by ``model``.

    When the transition matrix is stable,

    ::

        z0 = (I - TT) \\ CC
        P0 = TT P0 TT' + RR QQ RR'

    Otherwise the prior is diffuse: ``z0 = CC`` and ``P0 = diffuse_scale * I``.
    The diffuse prior is also used when ``I - TT`` is singular or the
    Lyapunov solve breaks down.
    """
    TT = model.TT
    ns = model.nstates

    if not is_stationary(TT):
        logger.info("Transition matrix is not stable, using a diffuse initial state")
        return diffuse_conditions(model, diffuse_scale)

    RQR, _, _ = model.system_covariances()
    try:
        z0 = np.linalg.solve(np.eye(ns) - TT, model.CC)
        P0, info = dlyap(TT, RQR)
    except np.linalg.LinAlgError as e:
        logger.info(f"Stationary initial state could not be computed ({e}), using a diffuse initial state")
        return diffuse_conditions(model, diffuse_scale)

    if info != 0 or not np.all(np.isfinite(z0)):
        logger.info("Stationary initial state is not finite, using a diffuse initial state")
        return diffuse_conditions(model, diffuse_scale)

    return z0, P0


__all__ = ["dlyap", "is_stationary", "initial_conditions", "diffuse_conditions", "DIFFUSE_SCALE"]
