"""
Numerical defaults shared across polyavg.
"""

import numpy as np

# Cubature defaults
DEFAULT_RELATIVE_TOL = 1e-4
DEFAULT_ABSOLUTE_TOL = 0.0
DEFAULT_MAX_EVALS = 50000
DEFAULT_GROUP_SIZE = 2

# Weight normalization
NORMALIZATION_TOL = 0.01  # |mass - 1| above this is fatal
NORMALIZATION_WARN_TOL = 1e-3  # above this a warning goes on the result
NORMALIZATION_PROBE_POINTS = 257

# Largest float strictly below 1.0; open endpoints of transforms clamp here
T_OPEN_MAX = float(np.nextafter(1.0, 0.0))

# Naive reference grid
DEFAULT_NAIVE_POINTS = 11

# Cache key rounding (significant decimals of each parameter)
CACHE_DECIMALS = 12
