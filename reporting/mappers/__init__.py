"""
reporting/mappers package marker.
"""

from reporting.mappers.column_mapper import ColumnMapper, ColumnMapping, normalize_header

__all__ = [
    "ColumnMapper",
    "ColumnMapping",
    "normalize_header",
]
