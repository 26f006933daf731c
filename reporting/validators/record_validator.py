"""
reporting/validators/record_validator.py

Row-level validation and type parsing against a dataset schema.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping

from reporting.domain.records import ValidationIssue
from reporting.schemas.registry import NUMERIC_FIELD_TYPES, BusinessRule, DatasetSchema, FieldDefinition
from reporting.validators.coercion import CoercionError, coerce, is_blank


class RecordValidator:
    """
    Validates and parses mapped canonical row values.

    Checks run per field in schema order: the required check first, then
    type coercion, then range constraints and category membership. Business
    rules run last and only for rows without errors.
    """

    def __init__(self, schema: DatasetSchema) -> None:
        self._schema = schema
        self._allowed_lookup: dict[str, dict[str, str]] = {
            definition.name: {value.casefold(): value for value in definition.allowed_values}
            for definition in schema.fields
            if definition.allowed_values
        }

    @property
    def schema(self) -> DatasetSchema:
        return self._schema

    @staticmethod
    def is_completely_empty_row(row: Mapping[str, Any]) -> bool:
        """
        Return True when all values in the row are empty or whitespace.
        """

        return all(is_blank(value) for value in row.values())

    def validate_row(
        self,
        *,
        mapped_row: Mapping[str, str | None],
        row_index: int,
    ) -> tuple[dict[str, Any] | None, list[ValidationIssue]]:
        """
        Validate and parse one canonical mapped row.

        Returns the typed fields (None when any error was found) and every
        issue raised for the row, errors and warnings alike.
        """

        issues: list[ValidationIssue] = []
        fields: dict[str, Any] = {}
        has_error = False

        for definition in self._schema.fields:
            raw_value = mapped_row.get(definition.name)
            if is_blank(raw_value):
                if definition.required:
                    has_error = True
                    issues.append(
                        ValidationIssue(
                            row_index=row_index,
                            field_name=definition.name,
                            message=f"{definition.label} is required.",
                            code="required_missing",
                            value=raw_value,
                        )
                    )
                continue

            try:
                value = coerce(raw_value, definition.type)
            except CoercionError as exc:
                has_error = True
                issues.append(
                    ValidationIssue(
                        row_index=row_index,
                        field_name=definition.name,
                        message=exc.message,
                        code=exc.code,
                        value=raw_value,
                    )
                )
                continue

            range_issue = self._check_range(definition, value, row_index=row_index, raw_value=raw_value)
            if range_issue is not None:
                has_error = True
                issues.append(range_issue)
                continue

            if definition.name in self._allowed_lookup:
                value, category_issue = self._check_category(definition, value, row_index=row_index)
                if category_issue is not None:
                    issues.append(category_issue)

            fields[definition.name] = value

        if has_error:
            return None, issues

        for rule in self._schema.business_rules:
            rule_issue = self._check_business_rule(rule, fields, row_index=row_index)
            if rule_issue is not None:
                issues.append(rule_issue)

        return fields, issues

    @staticmethod
    def _check_range(
        definition: FieldDefinition,
        value: Any,
        *,
        row_index: int,
        raw_value: Any,
    ) -> ValidationIssue | None:
        if definition.type not in NUMERIC_FIELD_TYPES:
            return None
        if definition.minimum is not None and value < definition.minimum:
            bound = f"at least {definition.minimum:g}"
        elif definition.maximum is not None and value > definition.maximum:
            bound = f"at most {definition.maximum:g}"
        else:
            return None
        return ValidationIssue(
            row_index=row_index,
            field_name=definition.name,
            message=f"{definition.label} must be {bound}.",
            code="out_of_range",
            value=raw_value,
        )

    def _check_category(
        self,
        definition: FieldDefinition,
        value: str,
        *,
        row_index: int,
    ) -> tuple[str, ValidationIssue | None]:
        canonical = self._allowed_lookup[definition.name].get(value.casefold())
        if canonical is not None:
            return canonical, None
        allowed = ", ".join(definition.allowed_values)
        return value, ValidationIssue(
            row_index=row_index,
            field_name=definition.name,
            message=f"Unrecognised {definition.label} '{value}'. Expected one of: {allowed}.",
            severity="warning",
            code="unknown_category",
            value=value,
        )

    @staticmethod
    def _check_business_rule(
        rule: BusinessRule,
        fields: Mapping[str, Any],
        *,
        row_index: int,
    ) -> ValidationIssue | None:
        left = fields.get(rule.field_name)
        right = fields.get(rule.other_field)
        if left is None or right is None:
            return None

        if rule.kind == "not_greater_than":
            violated = left > right
        else:
            violated = _as_date(left) < _as_date(right)
        if not violated:
            return None
        return ValidationIssue(
            row_index=row_index,
            field_name=rule.field_name,
            message=rule.message,
            severity="warning",
            code="business_rule",
            value=left,
        )


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value
