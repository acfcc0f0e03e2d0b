import numpy as np
import pandas as pd

from .errors import ConfigurationError


def observation_matrix(data):
    '''
    Convert observations into the ``Ny x T`` float matrix used by the filter.

    Parameters:
    data (numpy.ndarray, pandas.DataFrame or pandas.Series): The observations.
        Arrays are read as ``Ny x T`` (a 1-D array is a single observable).
        pandas objects follow the usual layout of one row per period and one
        column per observable and are transposed.
        Missing values are encoded as NaN.

    Returns:
    tuple: ``(y, index, columns)`` where ``index`` and ``columns`` are the
    period index and observable names of a pandas input, ``None`` otherwise.

    Raises:
    ConfigurationError: If the data cannot be converted to floats, has more
        than two dimensions or holds an infinite value.

    Example:
    >>> y, index, columns = observation_matrix(pd.DataFrame({'gdp': [0.1, np.nan]}))
    >>> y.shape
    (1, 2)
    '''
    index = None
    columns = None

    if isinstance(data, pd.Series):
        data = data.to_frame()

    if isinstance(data, pd.DataFrame):
        index = data.index
        columns = [str(c) for c in data.columns]
        values = data.to_numpy().T
    else:
        values = np.asarray(data)
        if values.ndim < 2:
            values = np.atleast_2d(values)

    try:
        y = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Observations must be numeric: {e}") from e

    if y.ndim != 2:
        raise ConfigurationError(f"Observations must be a 2-D Ny x T matrix, got {y.ndim} dimensions.")

    if np.isinf(y).any():
        rows, cols = np.nonzero(np.isinf(y))
        raise ConfigurationError(
            f"Observations must be finite or NaN, got inf for observable {rows[0]} in period {cols[0]}.")

    return np.ascontiguousarray(y), index, columns


__all__ = ["observation_matrix"]
