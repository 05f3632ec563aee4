"""Numerical constants and defaults for service flow analysis.

This module centralizes magic numbers and tolerances used throughout
spanflow, so that routing, flow quantification and the graph/spatial
statistics agree on the same values.
"""

# ============================================================================
# GRID DEFAULTS
# ============================================================================

DEFAULT_CELL_WIDTH = 30.0  # Physical cell width (m)
DEFAULT_CELL_HEIGHT = 30.0  # Physical cell height (m)

# Neighbour offsets (row, col); order fixes tie-breaking in the router
NEIGHBORS_4 = ((-1, 0), (1, 0), (0, -1), (0, 1))
NEIGHBORS_8 = NEIGHBORS_4 + ((-1, -1), (-1, 1), (1, -1), (1, 1))

# ============================================================================
# CLASSIFICATION THRESHOLDS
# ============================================================================

DEFAULT_SOURCE_THRESHOLD = 0.1  # Fraction of max supply
DEFAULT_SINK_THRESHOLD = 0.1  # Fraction of max sink strength
DEFAULT_USE_THRESHOLD = 0.1  # Fraction of max demand
DEFAULT_TRANS_THRESHOLD = 0.1  # Minimum pair transmission exp(-k*cost)

# ============================================================================
# FLOW PARAMETERS
# ============================================================================

DEFAULT_DECAY_K = 0.1  # Decay constant per unit accumulated cost
EFFICIENCY_EPSILON = 1e-12  # Guards actual / theoretical
CONSERVATION_TOLERANCE = 1e-9  # actual + blocked == theoretical
DEFAULT_BOTTLENECK_COUNT = 5

# ============================================================================
# NETWORK PARAMETERS
# ============================================================================

DEFAULT_NEIGHBORHOOD_RADIUS = 1  # Half-width of the overlap window (cells)
DEFAULT_MAX_COMMUNITY_ITERATIONS = 100
DEFAULT_MAX_NODES_ALL_PAIRS = 2000  # Skip O(n^3) metrics above this
DEFAULT_EIGEN_MAX_ITER = 1000
DEFAULT_EIGEN_TOL = 1e-9
DEFAULT_ROBUSTNESS_THRESHOLD = 0.5  # Largest component fraction
MODULARITY_GAIN_TOL = 1e-12  # Minimum gain accepted as an improvement

# ============================================================================
# SPATIAL STATISTICS
# ============================================================================

DEFAULT_GI_WINDOW = 5  # Getis-Ord window size (cells, odd)
SIGNIFICANCE_ALPHA = 0.05
Z_CRITICAL_95 = 1.96  # Two-sided critical value at alpha = 0.05

# ============================================================================
# EXECUTION
# ============================================================================

DEFAULT_N_WORKERS = 4
DEFAULT_SEED = 42
