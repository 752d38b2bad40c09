from __future__ import annotations

from enum import Enum
from typing import Dict, List

from lxml import etree

from api_method_framework.errors import ConfigurationError, ResponseMismatchError


class XmlCompareMode(Enum):
    """STRICT keeps child order and attributes significant.
    NON_STRICT ignores child order. LENIENT also ignores attributes."""

    STRICT = "strict"
    NON_STRICT = "non_strict"
    LENIENT = "lenient"

    @classmethod
    def parse(cls, raw: str) -> "XmlCompareMode":
        try:
            return cls[str(raw).strip().upper()]
        except KeyError:
            allowed = ", ".join(mode.name for mode in cls)
            raise ConfigurationError(f"Unsupported XML compare mode `{raw}`. Allowed: {allowed}") from None


def parse_xml(text: str) -> etree._Element:
    parser = etree.XMLParser(remove_blank_text=True, remove_comments=True, resolve_entities=False)
    return etree.fromstring(text.encode("utf-8"), parser=parser)


class XmlComparator:
    def __init__(self, mode: XmlCompareMode = XmlCompareMode.STRICT) -> None:
        self.mode = mode

    def compare_text(self, expected_text: str, actual_text: str) -> List[str]:
        try:
            expected = parse_xml(expected_text)
        except etree.XMLSyntaxError as exc:
            raise ConfigurationError(f"Expected XML document is invalid: {exc}") from exc
        try:
            actual = parse_xml(actual_text)
        except etree.XMLSyntaxError as exc:
            raise ResponseMismatchError(
                f"Actual response body is not valid XML: {exc}",
                expected=expected_text,
                actual=actual_text,
            ) from exc
        failures: List[str] = []
        self._compare(f"/{_name(expected)}", expected, actual, failures)
        return failures

    def assert_matches(self, expected_text: str, actual_text: str) -> None:
        failures = self.compare_text(expected_text, actual_text)
        if failures:
            raise ResponseMismatchError(
                f"XML response does not match expected ({self.mode.name})",
                diff=failures,
                expected=expected_text,
                actual=actual_text,
            )

    def _compare(self, path: str, expected, actual, failures: List[str]) -> None:
        if expected.tag != actual.tag:
            failures.append(f"{path}: Expected element <{_name(expected)}> got <{_name(actual)}>")
            return

        if self.mode is not XmlCompareMode.LENIENT:
            self._compare_attributes(path, expected, actual, failures)

        expected_text = (expected.text or "").strip()
        actual_text = (actual.text or "").strip()
        if expected_text != actual_text:
            failures.append(f"{path}: Expected text '{expected_text}' got '{actual_text}'")

        expected_children = _children(expected)
        actual_children = _children(actual)
        if len(expected_children) != len(actual_children):
            failures.append(
                f"{path}: Expected {len(expected_children)} child elements but got {len(actual_children)}"
            )
            return

        if self.mode is XmlCompareMode.STRICT:
            for index, (exp_child, act_child) in enumerate(zip(expected_children, actual_children), start=1):
                self._compare(f"{path}/{_name(exp_child)}[{index}]", exp_child, act_child, failures)
            return

        for index in self._unmatched(path, expected_children, actual_children):
            child = expected_children[index]
            failures.append(f"{path}: Could not find match for child <{_name(child)}> #{index + 1}")

    def _compare_attributes(self, path: str, expected, actual, failures: List[str]) -> None:
        expected_attrs: Dict[str, str] = dict(expected.attrib)
        actual_attrs: Dict[str, str] = dict(actual.attrib)
        for key, value in expected_attrs.items():
            if key not in actual_attrs:
                failures.append(f"{path}: Expected attribute @{key} but none found")
            elif actual_attrs[key] != value:
                failures.append(f"{path}/@{key}: Expected '{value}' got '{actual_attrs[key]}'")
        for key in actual_attrs:
            if key not in expected_attrs:
                failures.append(f"{path}: Unexpected attribute @{key}")

    def _unmatched(self, path: str, expected: list, actual: list) -> List[int]:
        candidates = []
        for exp_child in expected:
            matches = []
            for j, act_child in enumerate(actual):
                mismatches: List[str] = []
                self._compare(f"{path}/{_name(exp_child)}", exp_child, act_child, mismatches)
                if not mismatches:
                    matches.append(j)
            candidates.append(matches)
        owner: Dict[int, int] = {}

        def assign(i: int, seen: set) -> bool:
            for j in candidates[i]:
                if j in seen:
                    continue
                seen.add(j)
                if j not in owner or assign(owner[j], seen):
                    owner[j] = i
                    return True
            return False

        return [i for i in range(len(expected)) if not assign(i, set())]


def _children(element) -> list:
    return [child for child in element if isinstance(child.tag, str)]


def _name(element) -> str:
    return etree.QName(element).localname
