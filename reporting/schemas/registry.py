"""
reporting/schemas/registry.py

Dataset schema definitions and the registry that resolves them by dataset type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping

from reporting.errors import UnknownDatasetTypeError

FieldType = Literal["string", "number", "currency", "percentage", "date", "datetime", "category"]
DerivationRule = Literal["difference", "month_start", "percent_of", "seconds_between", "days_between"]
BusinessRuleKind = Literal["not_greater_than", "not_before"]

FIELD_TYPES: tuple[str, ...] = ("string", "number", "currency", "percentage", "date", "datetime", "category")
NUMERIC_FIELD_TYPES = frozenset({"number", "currency", "percentage"})
TEMPORAL_FIELD_TYPES = frozenset({"date", "datetime"})

DEFAULT_SEARCHABLE_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "reference",
    "id",
    "customer_name",
    "account_number",
    "loan_id",
    "complaint_type",
    "agent_name",
)


@dataclass(frozen=True)
class FieldDefinition:
    """
    One canonical field of a dataset.
    """

    name: str
    label: str
    type: FieldType
    required: bool = False
    synonyms: tuple[str, ...] = ()
    minimum: float | None = None
    maximum: float | None = None
    allowed_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Field name must not be empty.")
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unsupported field type {self.type!r} for field {self.name!r}.")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(f"Field {self.name!r} has minimum greater than maximum.")


@dataclass(frozen=True)
class DerivedField:
    """
    A field computed from already-validated fields of the same record.
    """

    definition: FieldDefinition
    rule: DerivationRule
    inputs: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass(frozen=True)
class BusinessRule:
    """
    Cross-field consistency check reported as a warning.

    ``not_greater_than``: ``field_name`` must not exceed ``other_field``.
    ``not_before``: ``field_name`` must not precede ``other_field``.
    """

    kind: BusinessRuleKind
    field_name: str
    other_field: str
    message: str


@dataclass(frozen=True)
class DatasetSchema:
    """
    Ordered canonical fields plus dataset-level behaviour.
    """

    dataset_type: str
    label: str
    fields: tuple[FieldDefinition, ...]
    primary_date_field: str | None = None
    identity_fields: tuple[str, ...] = ()
    indexed_fields: tuple[str, ...] = ()
    searchable_fields: tuple[str, ...] = ()
    derived_fields: tuple[DerivedField, ...] = ()
    business_rules: tuple[BusinessRule, ...] = ()
    _by_name: Mapping[str, FieldDefinition] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_name: dict[str, FieldDefinition] = {}
        for definition in (*self.fields, *(derived.definition for derived in self.derived_fields)):
            if definition.name in by_name:
                raise ValueError(
                    f"Dataset {self.dataset_type!r} declares field {definition.name!r} more than once."
                )
            by_name[definition.name] = definition
        object.__setattr__(self, "_by_name", by_name)

        for name in (*self.identity_fields, *self.indexed_fields):
            if name not in by_name:
                raise ValueError(f"Dataset {self.dataset_type!r} references unknown field {name!r}.")
        if self.primary_date_field is not None:
            primary = by_name.get(self.primary_date_field)
            if primary is None or primary.type not in TEMPORAL_FIELD_TYPES:
                raise ValueError(
                    f"Primary date field {self.primary_date_field!r} of {self.dataset_type!r} "
                    "must be a declared date or datetime field."
                )

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(definition.name for definition in self.fields)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(definition.name for definition in self.fields if definition.required)

    @property
    def all_field_names(self) -> tuple[str, ...]:
        return tuple(self._by_name)

    def get_field(self, name: str) -> FieldDefinition | None:
        """
        Return a declared or derived field definition by canonical name.
        """

        return self._by_name.get(name)

    def search_fields(self) -> tuple[str, ...]:
        return self.searchable_fields or DEFAULT_SEARCHABLE_FIELDS


class SchemaRegistry:
    """
    Maps dataset types to their schemas.

    Registries are plain objects; build one with :meth:`default` for the
    built-in datasets, or construct an empty one and register custom schemas.
    """

    def __init__(self, schemas: Iterable[DatasetSchema] = ()) -> None:
        self._schemas: dict[str, DatasetSchema] = {}
        for schema in schemas:
            self.register(schema)

    @classmethod
    def default(cls) -> SchemaRegistry:
        from reporting.schemas.datasets import BUILTIN_SCHEMAS

        return cls(BUILTIN_SCHEMAS)

    def register(self, schema: DatasetSchema, *, replace: bool = False) -> None:
        if not schema.dataset_type.strip():
            raise ValueError("dataset_type must be a non-empty string.")
        if schema.dataset_type in self._schemas and not replace:
            raise ValueError(f"Dataset type {schema.dataset_type!r} is already registered.")
        self._schemas[schema.dataset_type] = schema

    def get(self, dataset_type: str) -> DatasetSchema:
        """
        Return the schema for *dataset_type*.

        Raises UnknownDatasetTypeError when nothing is registered.
        """

        schema = self._schemas.get(dataset_type)
        if schema is None:
            raise UnknownDatasetTypeError(dataset_type)
        return schema

    def __contains__(self, dataset_type: object) -> bool:
        return dataset_type in self._schemas

    def dataset_types(self) -> list[str]:
        return list(self._schemas)

    def indexed_fields_by_type(self) -> dict[str, tuple[str, ...]]:
        return {
            dataset_type: schema.indexed_fields
            for dataset_type, schema in self._schemas.items()
            if schema.indexed_fields
        }

    def date_fields_by_type(self) -> dict[str, str]:
        return {
            dataset_type: schema.primary_date_field
            for dataset_type, schema in self._schemas.items()
            if schema.primary_date_field
        }
