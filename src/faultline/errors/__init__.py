"""错误体系：提供带有结果类别标签的结构化错误类型。

Error hierarchy for faultline.

Provides structured error types tagged with an ErrorKind classification.
"""

from faultline.errors.base import (
    CircuitOpenError,
    ConfigurationError,
    ErrorContext,
    FaultlineError,
    OperationTimeoutError,
)
from faultline.errors.classification import (
    ErrorKind,
    classify_error,
    is_synthetic,
)

__all__ = [
    # Base errors
    "CircuitOpenError",
    "ConfigurationError",
    "ErrorContext",
    # Classification
    "ErrorKind",
    "FaultlineError",
    "OperationTimeoutError",
    "classify_error",
    "is_synthetic",
]
