# matpipe/config.py
"""
Centralized configuration for the matpipe toolkit.
This module provides a single source of truth for all configurable parameters.
"""

import numpy as np

# Element type used when a matrix is built without an explicit dtype
DEFAULT_DTYPE = np.float64

# Dispatch table parameters
DISPATCH_TABLE_CAPACITY = 10  # Maximum number of (name, operation) entries

# Operand ordering heuristic: length of the name prefix/suffix compared
NAME_AFFIX_LENGTH = 3
VECTOR_PREFIX = "vec"

# Configuration stream
CONFIG_COMMENT_PREFIX = "#"

# Logging
DEFAULT_LOG_LEVEL = "WARNING"
