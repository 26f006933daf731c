"""
reporting/services package marker.
"""

from reporting.services.derived_fields import compute_derived_fields
from reporting.services.ingestion_service import IngestionPipeline, make_record_id
from reporting.services.query_cache import QueryCache
from reporting.services.query_service import (
    DatasetSummary,
    QueryPage,
    ReportQueryService,
    TimeSeriesResult,
)

__all__ = [
    "DatasetSummary",
    "IngestionPipeline",
    "QueryCache",
    "QueryPage",
    "ReportQueryService",
    "TimeSeriesResult",
    "compute_derived_fields",
    "make_record_id",
]
