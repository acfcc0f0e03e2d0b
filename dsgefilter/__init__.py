"""
dsgefilter: Kalman filtering for linear Gaussian state space models.

The filter evaluates the likelihood of DSGE-style state space models with
missing observations, regime switches at known dates and discarded presample
periods, and returns the predicted and filtered state trajectories.
"""

# Configure logging first
from .logging_config import filter_log, get_logger

from .errors import ConfigurationError, DomainError, EmptyDataWarning, FilterError, NumericalError
from .StateSpaceModel import StateSpaceModel
from .regimes import Regime
from .results import KalmanOutput, rmse, rmsd, trim_presample
from .settings import FilterSettings, read_settings
from .filters import FilterState, kalman_filter, kalman_step

__version__ = '0.1.0'
