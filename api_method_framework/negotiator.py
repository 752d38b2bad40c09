from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from api_method_framework.descriptors import ContentKind
from api_method_framework.errors import PreconditionError
from api_method_framework.json_compare import JsonComparator, JsonComparatorContext, JsonCompareMode
from api_method_framework.schema import validate_json_against_schema, validate_xml_against_schema
from api_method_framework.xml_compare import XmlComparator, XmlCompareMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonSpec:
    json_mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE
    xml_mode: XmlCompareMode = XmlCompareMode.STRICT
    flags: Tuple[str, ...] = ()
    context: JsonComparatorContext | None = None


class ContentNegotiator:
    def __init__(self, kind: ContentKind = ContentKind.JSON) -> None:
        self.kind = kind

    def validate_exemplar(self, expected_text: str, actual_text: str, spec: ComparisonSpec) -> None:
        if self.kind is ContentKind.JSON:
            logger.debug("Comparing JSON response mode=%s flags=%s", spec.json_mode.name, spec.flags)
            JsonComparator(spec.json_mode, spec.context, spec.flags).assert_matches(expected_text, actual_text)
            return

        if spec.flags:
            raise PreconditionError(
                f"JSON validation flags {list(spec.flags)} can't be applied to an XML response"
            )
        if spec.context is not None:
            raise PreconditionError("JSON comparator context can't be applied to an XML response")
        logger.debug("Comparing XML response mode=%s", spec.xml_mode.name)
        XmlComparator(spec.xml_mode).assert_matches(expected_text, actual_text)

    def validate_schema(self, schema_text: str, actual_text: str, base_url: str | None = None) -> None:
        if self.kind is ContentKind.JSON:
            validate_json_against_schema(schema_text, actual_text)
        else:
            validate_xml_against_schema(schema_text, actual_text, base_url=base_url)
