"""Exception types shared across the monitor.

Probe failures are not exceptions here: the probe executor folds every
network outcome into a HealthCheckResult.
"""

from __future__ import annotations


class HealthMonError(Exception):
    """Base class for healthmon errors."""


class StoreError(HealthMonError):
    """Raised when the result store cannot be read or written."""


class BootstrapError(HealthMonError):
    """Raised when the store is unreachable at startup."""
