"""
Error taxonomy for the upload-to-chart pipeline.

Rationale:
- Every failure that ends a request is a ChartPackError carrying the HTTP
  status the orchestrator should answer with.
- CleanupWarning is not an error: it is collected and logged, never raised.
"""

from typing import Optional


class ChartPackError(Exception):
    """Base class for failures that terminate a request."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputRejected(ChartPackError):
    """Missing field, disallowed extension or oversized upload."""

    status_code = 400


class AnalyzerUnavailable(ChartPackError):
    """The analyzer process could not be spawned at all."""


class AnalyzerFailure(ChartPackError):
    """The analyzer ran but did not produce a usable result."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class AnalyzerTimeout(AnalyzerFailure):
    """The analyzer exceeded the configured wait and was killed."""


class SchemaViolation(ChartPackError):
    """The analyzer output does not satisfy the chart pack contract."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class CleanupWarning(Warning):
    """A working file could not be removed. Logged only."""

    def __init__(self, path, reason: str):
        super().__init__(f"Failed to remove {path}: {reason}")
        self.path = path
        self.reason = reason
