"""
reporting/mappers/column_mapper.py

Column mapping from uploaded file headers to a dataset's canonical fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from reporting.errors import StructuralError, StructuralErrorDetail
from reporting.schemas.registry import DatasetSchema


def normalize_header(header: str) -> str:
    """
    Normalize a column name for flexible matching.

    Case, surrounding whitespace, inner whitespace and punctuation are all
    ignored, so ``"Customer ID"``, ``"customer_id"`` and ``"CustomerID"``
    compare equal.
    """

    return "".join(ch for ch in header.strip().lower() if ch.isalnum())


@dataclass(frozen=True)
class ColumnMapping:
    """
    Resolved mapping between source headers and canonical field names.
    """

    header_to_field: dict[str, str]
    unmapped_headers: tuple[str, ...]
    source_headers: tuple[str, ...]

    @property
    def field_to_header(self) -> dict[str, str]:
        return {field_name: header for header, field_name in self.header_to_field.items()}


class ColumnMapper:
    """
    Maps incoming headers to canonical schema fields.

    For every header the schema's fields are tried in declaration order,
    canonical name first and then its synonyms; the first match wins.
    """

    def __init__(self, schema: DatasetSchema) -> None:
        self._schema = schema
        self._lookup: list[tuple[str, frozenset[str]]] = [
            (
                definition.name,
                frozenset(
                    key
                    for key in (normalize_header(candidate) for candidate in (definition.name, *definition.synonyms))
                    if key
                ),
            )
            for definition in schema.fields
        ]

    def resolve(self, header: str) -> str | None:
        """
        Return the canonical field for one header, or None when nothing matches.
        """

        normalized = normalize_header(header)
        if not normalized:
            return None
        for field_name, keys in self._lookup:
            if normalized in keys:
                return field_name
        return None

    def build_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        """
        Resolve the header mapping for one file.

        Raises StructuralError for duplicate headers, several headers
        resolving to one canonical field, or required fields with no header.
        """

        errors: list[StructuralErrorDetail] = []
        seen_headers: set[str] = set()
        header_to_field: dict[str, str] = {}
        field_sources: dict[str, str] = {}
        unmapped: list[str] = []

        for header in headers:
            key = header.strip()
            if not key:
                continue
            if key in seen_headers:
                errors.append(
                    StructuralErrorDetail(
                        code="duplicate_header",
                        message=f"Header '{key}' appears more than once.",
                        source_column=header,
                    )
                )
                continue
            seen_headers.add(key)

            field_name = self.resolve(header)
            if field_name is None:
                unmapped.append(header)
                continue

            previous = field_sources.get(field_name)
            if previous is not None:
                errors.append(
                    StructuralErrorDetail(
                        code="header_collision",
                        message=(
                            f"Headers '{previous}' and '{header}' both map to field '{field_name}'."
                        ),
                        field_name=field_name,
                        source_column=header,
                        context={"headers": [previous, header]},
                    )
                )
                continue
            field_sources[field_name] = header
            header_to_field[header] = field_name

        missing = [name for name in self._schema.required_fields if name not in field_sources]
        for name in missing:
            errors.append(
                StructuralErrorDetail(
                    code="required_field_unmapped",
                    message="Required field has no matching column.",
                    field_name=name,
                    context={"source_headers": list(headers)},
                )
            )

        if errors:
            if missing:
                message = (
                    f"Column mapping failed for {self._schema.dataset_type}. "
                    f"Missing required fields: {', '.join(missing)}."
                )
            else:
                message = f"Column mapping failed for {self._schema.dataset_type}."
            raise StructuralError(message=message, errors=errors)

        return ColumnMapping(
            header_to_field=header_to_field,
            unmapped_headers=tuple(unmapped),
            source_headers=tuple(headers),
        )

    @staticmethod
    def map_row(
        *,
        raw_row: Mapping[str, str | None],
        mapping: ColumnMapping,
    ) -> tuple[dict[str, str | None], dict[str, str | None]]:
        """
        Split one source row into canonical raw fields and unmapped extras.
        """

        mapped: dict[str, str | None] = {}
        for header, field_name in mapping.header_to_field.items():
            mapped[field_name] = raw_row.get(header)
        extras = {header: raw_row.get(header) for header in mapping.unmapped_headers}
        return mapped, extras
