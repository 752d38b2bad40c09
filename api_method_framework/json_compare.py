from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Pattern, Tuple

from deepdiff import DeepDiff
from deepdiff.operator import BaseOperator

from api_method_framework.errors import ConfigurationError, ResponseMismatchError

ARRAY_CONTAINS = "ARRAY_CONTAINS"

Predicate = Callable[[Any], bool]

# DeepDiff report type used for keyword, rule and numeric failures.
_EXEMPLAR_REPORT = "exemplar_mismatch"

_JSON_PATH_TOKEN = re.compile(r"\.([^.\[\]]+)|\[(\d+|\*)\]")
_DIFF_PATH_TOKEN = re.compile(r"\[(\d+)\]|\[('(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\")\]")
_QUOTED_KEY = r"\[(?:'[^']*'|\"[^\"]*\")\]"


class JsonCompareMode(Enum):
    """How an expected JSON document is matched against the actual one.

    ``extensible`` lets the actual objects carry fields the expected ones do
    not mention. ``strict_order`` requires array items in the same positions.
    """

    STRICT = (False, True)
    NON_EXTENSIBLE = (False, False)
    STRICT_ORDER = (True, True)
    LENIENT = (True, False)

    @property
    def extensible(self) -> bool:
        return self.value[0]

    @property
    def strict_order(self) -> bool:
        return self.value[1]

    @classmethod
    def parse(cls, raw: str) -> "JsonCompareMode":
        try:
            return cls[str(raw).strip().upper()]
        except KeyError:
            allowed = ", ".join(mode.name for mode in cls)
            raise ConfigurationError(f"Unsupported JSON compare mode `{raw}`. Allowed: {allowed}") from None


_TYPE_CHECKS: Dict[str, Predicate] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "long": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "double": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "jsonarray": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "jsonobject": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


def _path_pattern(json_path: str) -> Pattern:
    """Compiles ``$.items[*].id`` into a regex over DeepDiff paths like ``root['items'][0]['id']``."""
    path = str(json_path).strip()
    if not path.startswith("$"):
        raise ConfigurationError(f"JSON path `{json_path}` must start with `$`")
    parts = ["^root"]
    position = 1
    for token in _JSON_PATH_TOKEN.finditer(path, 1):
        if token.start() != position:
            break
        position = token.end()
        name, index = token.groups()
        if name == "*":
            parts.append(_QUOTED_KEY)
        elif name is not None:
            escaped = re.escape(name)
            parts.append(rf"\[(?:'{escaped}'|\"{escaped}\")\]")
        elif index == "*":
            parts.append(r"\[\d+\]")
        else:
            parts.append(rf"\[{index}\]")
    if position != len(path):
        raise ConfigurationError(f"Unsupported JSON path `{json_path}`")
    return re.compile("".join(parts) + "$")


def _path_tokens(diff_path: str) -> List[Tuple[int, int, int | str]]:
    tokens = []
    for token in _DIFF_PATH_TOKEN.finditer(diff_path):
        index, key = token.groups()
        tokens.append((token.start(), token.end(), int(index) if index else ast.literal_eval(key)))
    return tokens


def _json_path(diff_path: str) -> str:
    """``root['items'][0]['id']`` -> ``$.items[0].id``"""
    parts = ["$"]
    for _, _, step in _path_tokens(diff_path):
        parts.append(f"[{step}]" if isinstance(step, int) else f".{step}")
    return "".join(parts)


def _split_last(diff_path: str) -> Tuple[str, int | str]:
    start, _, step = _path_tokens(diff_path)[-1]
    return diff_path[:start], step


@dataclass
class JsonComparatorContext:
    """Extra match rules supplied by the test author.

    Rules are keyed by JSON path (``$.user.id``, ``$.items[*].id``). A rule
    at a path replaces the exemplar check at that path.
    """

    predicates: Dict[str, Predicate] = field(default_factory=dict)
    ignored_paths: List[str] = field(default_factory=list)
    regex_rules: Dict[str, str] = field(default_factory=dict)
    path_predicates: Dict[str, Predicate] = field(default_factory=dict)

    def with_predicate(self, name: str, predicate: Predicate) -> "JsonComparatorContext":
        self.predicates[name] = predicate
        return self

    def ignore(self, path: str) -> "JsonComparatorContext":
        self.ignored_paths.append(path)
        return self

    def match_regex(self, path: str, pattern: str) -> "JsonComparatorContext":
        self.regex_rules[path] = pattern
        return self

    def require(self, path: str, predicate: Predicate) -> "JsonComparatorContext":
        self.path_predicates[path] = predicate
        return self

    def merge(self, other: JsonComparatorContext | None) -> JsonComparatorContext:
        if other is None:
            return JsonComparatorContext(
                dict(self.predicates),
                list(self.ignored_paths),
                dict(self.regex_rules),
                dict(self.path_predicates),
            )
        return JsonComparatorContext(
            {**self.predicates, **other.predicates},
            self.ignored_paths + [p for p in other.ignored_paths if p not in self.ignored_paths],
            {**self.regex_rules, **other.regex_rules},
            {**self.path_predicates, **other.path_predicates},
        )


class _ExemplarOperator(BaseOperator):
    """Takes over DeepDiff levels where plain equality is not the rule.

    That covers context rules, exemplar keywords and int/float pairs. Failures
    are reported as ``exemplar_mismatch`` entries and DeepDiff does not descend
    further.
    """

    def __init__(self, comparator: "JsonComparator") -> None:
        super().__init__()
        self.comparator = comparator

    def match(self, level) -> bool:
        return self.comparator._takes_over(level)

    def give_up_diffing(self, level, diff_instance) -> bool:
        messages = self.comparator._check(level)
        if messages:
            diff_instance.custom_report_result(_EXEMPLAR_REPORT, level, {"messages": messages})
        return True


class JsonComparator:
    """Matches an expected JSON document against the actual one with DeepDiff.

    The structural diff is DeepDiff's. This class decides which of its
    reports are failures under the mode, the ``ARRAY_CONTAINS`` flags and
    the comparator context.
    """

    def __init__(
        self,
        mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE,
        context: JsonComparatorContext | None = None,
        flags: Iterable[str] = (),
    ) -> None:
        self.mode = mode
        self.context = JsonComparatorContext().merge(context)
        self._contains_everywhere = False
        self._contains_paths: List[Pattern] = []
        for flag in flags:
            self._add_flag(flag)
        self._ignored = [_path_pattern(p) for p in self.context.ignored_paths]
        self._rules: List[Tuple[Pattern, Callable[[Any], str | None]]] = []
        for path, regex in self.context.regex_rules.items():
            self._rules.append((_path_pattern(path), _regex_check(_compile(regex))))
        for path, predicate in self.context.path_predicates.items():
            self._rules.append((_path_pattern(path), _predicate_check(predicate)))

    def _add_flag(self, flag: str) -> None:
        name, _, scope = str(flag).partition(":")
        if name.strip() != ARRAY_CONTAINS:
            raise ConfigurationError(f"Unsupported JSON validation flag `{flag}`")
        if scope.strip():
            self._contains_paths.append(_path_pattern(scope))
        else:
            self._contains_everywhere = True

    def compare(self, expected: Any, actual: Any) -> List[str]:
        diff = DeepDiff(
            expected,
            actual,
            ignore_order_func=self._ignores_order,
            report_repetition=True,
            exclude_regex_paths=self._ignored or None,
            custom_operators=[_ExemplarOperator(self)],
            cutoff_distance_for_pairs=1.0,
            cutoff_intersection_for_pairs=1.0,
            threshold_to_diff_deeper=0,
        )
        return self._failures(diff)

    def compare_text(self, expected_text: str, actual_text: str) -> List[str]:
        try:
            expected = json.loads(expected_text)
        except ValueError as exc:
            raise ConfigurationError(f"Expected JSON document is invalid: {exc}") from exc
        try:
            actual = json.loads(actual_text)
        except ValueError as exc:
            raise ResponseMismatchError(
                f"Actual response body is not valid JSON: {exc}",
                expected=expected_text,
                actual=actual_text,
            ) from exc
        return self.compare(expected, actual)

    def assert_matches(self, expected_text: str, actual_text: str) -> None:
        failures = self.compare_text(expected_text, actual_text)
        if failures:
            raise ResponseMismatchError(
                f"JSON response does not match expected ({self.mode.name})",
                diff=failures,
                expected=expected_text,
                actual=actual_text,
            )

    # ---- DeepDiff hooks --------------------------------------------------

    def _ignores_order(self, level) -> bool:
        return not self.mode.strict_order or self._contains(level.path())

    def _contains(self, array_path: str) -> bool:
        return self._contains_everywhere or any(rx.search(array_path) for rx in self._contains_paths)

    def _takes_over(self, level) -> bool:
        path = level.path()
        if any(rx.search(path) for rx in self._ignored):
            return False
        if any(rx.search(path) for rx, _ in self._rules):
            return True
        expected, actual = level.t1, level.t2
        if isinstance(expected, str) and _keyword(expected) is not None:
            return True
        return _is_number(expected) and _is_number(actual) and type(expected) is not type(actual)

    def _check(self, level) -> List[str]:
        path, expected, actual = level.path(), level.t1, level.t2
        rules = [check for rx, check in self._rules if rx.search(path)]
        if rules:
            results = [check(actual) for check in rules]
        elif isinstance(expected, str) and _keyword(expected) is not None:
            results = [self._check_keyword(_json_path(path), expected, actual)]
        elif float(expected) != float(actual):
            results = [f"Expected: {_dump(expected)} got: {_dump(actual)}"]
        else:
            results = []
        return [message for message in results if message]

    def _check_keyword(self, json_path: str, expected: str, actual: Any) -> str | None:
        keyword, argument = _keyword(expected)
        if keyword == "skip":
            return None
        if keyword == "type":
            if not _TYPE_CHECKS[argument.lower()](actual):
                return f"Expected type {argument} got: {_dump(actual)}"
            return None
        if keyword == "regex":
            return _regex_check(_compile(argument))(actual)
        predicate = self.context.predicates.get(argument)
        if predicate is None:
            raise ConfigurationError(f"Predicate `{argument}` used at {json_path} is not registered in context")
        if not predicate(actual):
            return f"{_dump(actual)} rejected by predicate `{argument}`"
        return None

    # ---- report policy ---------------------------------------------------

    def _failures(self, diff: DeepDiff) -> List[str]:
        failures: List[str] = []
        for report_type in ("type_changes", "values_changed"):
            for path, change in diff.get(report_type, {}).items():
                failures.append(
                    f"{_json_path(path)}: Expected: {_dump(change.get('old_value'))} got: {_dump(change.get('new_value'))}"
                )
        for path, extra in diff.get(_EXEMPLAR_REPORT, {}).items():
            failures.extend(f"{_json_path(path)}: {message}" for message in extra["messages"])

        for path in diff.get("dictionary_item_removed", ()):
            parent, key = _split_last(path)
            failures.append(f"{_json_path(parent)}: Expected: {key} but none found")
        if not self.mode.extensible:
            for path in diff.get("dictionary_item_added", ()):
                parent, key = _split_last(path)
                failures.append(f"{_json_path(parent)}: Unexpected: {key}")

        for path, value in diff.get("iterable_item_removed", {}).items():
            failures.append(f"{_json_path(path)}: Expected array item {_dump(value)} not found in actual array")
        for path, value in diff.get("iterable_item_added", {}).items():
            if not self._contains(_split_last(path)[0]):
                failures.append(f"{_json_path(path)}: Unexpected array item {_dump(value)}")
        for path, change in diff.get("repetition_change", {}).items():
            array_path = _split_last(path)[0]
            if self._contains(array_path) and change["new_repeat"] >= change["old_repeat"]:
                continue
            failures.append(
                f"{_json_path(array_path)}: Expected {change['old_repeat']} occurrence(s) of "
                f"{_dump(change['value'])} got {change['new_repeat']}"
            )
        return failures


def compare_json(
    expected_text: str,
    actual_text: str,
    mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE,
    context: JsonComparatorContext | None = None,
    flags: Iterable[str] = (),
) -> Tuple[bool, List[str]]:
    failures = JsonComparator(mode, context, flags).compare_text(expected_text, actual_text)
    return not failures, failures


def _keyword(expected: str) -> Tuple[str, str] | None:
    """Splits an exemplar keyword (``skip``, ``type:``, ``regex:``, ``predicate:``)."""
    if expected == "skip":
        return "skip", ""
    keyword, sep, argument = expected.partition(":")
    if not sep:
        return None
    if keyword == "type":
        argument = argument.strip()
        return (keyword, argument) if argument.lower() in _TYPE_CHECKS else None
    if keyword in ("regex", "predicate"):
        return keyword, argument
    return None


def _compile(pattern: str) -> Pattern:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid regex `{pattern}`: {exc}") from exc


def _regex_check(pattern: Pattern) -> Callable[[Any], str | None]:
    def check(actual: Any) -> str | None:
        if actual is None or isinstance(actual, (dict, list)) or not pattern.fullmatch(_as_text(actual)):
            return f"{_dump(actual)} does not match regex `{pattern.pattern}`"
        return None

    return check


def _predicate_check(predicate: Predicate) -> Callable[[Any], str | None]:
    def check(actual: Any) -> str | None:
        return None if predicate(actual) else f"{_dump(actual)} rejected by predicate"

    return check


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _dump(value: Any) -> str:
    text = json.dumps(value, sort_keys=True, default=str)
    return text if len(text) <= 200 else text[:197] + "..."
