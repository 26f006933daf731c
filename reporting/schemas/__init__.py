"""
reporting/schemas package marker.
"""

from reporting.schemas.query import (
    AggregationSpec,
    CategoryPredicate,
    DateRangePredicate,
    FilterSpec,
    NumericRangePredicate,
    SortSpec,
    TextPredicate,
)
from reporting.schemas.registry import (
    BusinessRule,
    DatasetSchema,
    DerivedField,
    FieldDefinition,
    SchemaRegistry,
)

__all__ = [
    "AggregationSpec",
    "BusinessRule",
    "CategoryPredicate",
    "DatasetSchema",
    "DateRangePredicate",
    "DerivedField",
    "FieldDefinition",
    "FilterSpec",
    "NumericRangePredicate",
    "SchemaRegistry",
    "SortSpec",
    "TextPredicate",
]
