from __future__ import annotations

import json
from typing import List

import jsonschema
from jsonschema.exceptions import SchemaError
from lxml import etree

from api_method_framework.errors import ConfigurationError, ResponseMismatchError
from api_method_framework.xml_compare import parse_xml


def validate_json_against_schema(schema_text: str, actual_text: str) -> None:
    try:
        schema = json.loads(schema_text)
    except ValueError as exc:
        raise ConfigurationError(f"JSON schema is not valid JSON: {exc}") from exc
    try:
        instance = json.loads(actual_text)
    except ValueError as exc:
        raise ResponseMismatchError(
            f"Actual response body is not valid JSON: {exc}", expected=schema_text, actual=actual_text
        ) from exc

    validator_cls = jsonschema.validators.validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        raise ConfigurationError(f"JSON schema is invalid: {exc.message}") from exc

    validator = validator_cls(schema)
    failures: List[str] = []
    for error in sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.absolute_path]):
        failures.append(f"{error.json_path}: {error.message}")
    if failures:
        raise ResponseMismatchError(
            "JSON response does not conform to schema",
            diff=failures,
            expected=schema_text,
            actual=actual_text,
        )


def validate_xml_against_schema(schema_text: str, actual_text: str, base_url: str | None = None) -> None:
    """Validates against an XSD. ``base_url`` resolves relative xs:include paths."""
    try:
        schema_doc = etree.fromstring(schema_text.encode("utf-8"), base_url=base_url)
        schema = etree.XMLSchema(schema_doc)
    except (etree.XMLSyntaxError, etree.XMLSchemaParseError) as exc:
        raise ConfigurationError(f"XML schema is invalid: {exc}") from exc
    try:
        document = parse_xml(actual_text)
    except etree.XMLSyntaxError as exc:
        raise ResponseMismatchError(
            f"Actual response body is not valid XML: {exc}", expected=schema_text, actual=actual_text
        ) from exc

    if not schema.validate(document):
        failures = [f"line {entry.line}: {entry.message}" for entry in schema.error_log]
        raise ResponseMismatchError(
            "XML response does not conform to schema",
            diff=failures,
            expected=schema_text,
            actual=actual_text,
        )
