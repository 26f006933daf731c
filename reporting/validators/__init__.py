"""
reporting/validators package marker.
"""

from reporting.validators.coercion import CoercionError, coerce
from reporting.validators.record_validator import RecordValidator

__all__ = [
    "CoercionError",
    "RecordValidator",
    "coerce",
]
