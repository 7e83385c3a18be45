"""
spca_lab - Robust Sparse Principal Component Analysis via Variable Projection
"""

__version__ = "1.0.0"

# =============================================================================
# CORE TYPES
# =============================================================================
from .types import (
    RobustSPCAResult,
    SolverConfig,
    ScaledParameters,
    SolverState,
    CleanedInput,
    SPCAError,
    InvalidParameterError,
    NumericalFailureError,
)

# =============================================================================
# DECOMPOSITION
# =============================================================================
from .decomposition import (
    robspca,
    project,
    reconstruct,
    ConvergenceMonitor,
    VariableProjectionSolver,
)

# =============================================================================
# OPERATORS
# =============================================================================
from .computation import (
    soft_threshold,
    total_variance,
)

# =============================================================================
# REPORTING
# =============================================================================
from .reporting import (
    summarize,
    format_result,
    VarianceSummary,
)

# =============================================================================
# I/O
# =============================================================================
from .io import (
    load_matrix,
    save_result,
    load_result,
    ResultFormat,
)

# PUBLIC API
# =============================================================================
__all__ = [
    "__version__",
    "RobustSPCAResult",
    "SolverConfig",
    "ScaledParameters",
    "SolverState",
    "CleanedInput",
    "SPCAError",
    "InvalidParameterError",
    "NumericalFailureError",
    "robspca",
    "project",
    "reconstruct",
    "ConvergenceMonitor",
    "VariableProjectionSolver",
    "soft_threshold",
    "total_variance",
    "summarize",
    "format_result",
    "VarianceSummary",
    "load_matrix",
    "save_result",
    "load_result",
    "ResultFormat",
]
