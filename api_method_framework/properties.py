from __future__ import annotations

import logging
import random
import re
import string
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import yaml
from cryptography.fernet import Fernet, InvalidToken

from api_method_framework.errors import ConfigurationError, ResourceLoadError, ResourceNotFoundError

logger = logging.getLogger(__name__)

ProcessorKind = str | type


class PropertyProcessor:
    """Transforms a property value at the moment it is stored."""

    kind = "base"

    def transform(self, key: str, value: Any) -> Any:
        raise NotImplementedError


class GenerateProcessor(PropertyProcessor):
    """Replaces ``generate_*`` expressions with freshly generated values.

    Supported expressions::

        generate_uuid
        generate_word(8)
        generate_number(6)
        generate_date(%Y-%m-%d;-1)
    """

    kind = "generate"

    _PATTERN = re.compile(
        r"generate_uuid|generate_word\((\d+)\)|generate_number\((\d+)\)|generate_date\(([^;)]*);?(-?\d+)?\)"
    )

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def transform(self, key: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return self._PATTERN.sub(self._generate, value)

    def _generate(self, match: re.Match) -> str:
        expr = match.group(0)
        if expr == "generate_uuid":
            return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))
        if expr.startswith("generate_word"):
            return "".join(self.rng.choice(string.ascii_letters) for _ in range(int(match.group(1))))
        if expr.startswith("generate_number"):
            size = int(match.group(2))
            if size <= 0:
                return ""
            first = self.rng.choice("123456789")
            return first + "".join(self.rng.choice(string.digits) for _ in range(size - 1))
        date_format = match.group(3) or "%Y-%m-%d"
        offset_days = int(match.group(4) or 0)
        return (datetime.now() + timedelta(days=offset_days)).strftime(date_format)


class CryptoProcessor(PropertyProcessor):
    """Decrypts ``{crypt:TOKEN}`` markers with a Fernet key."""

    kind = "crypto"

    MARKER = re.compile(r"\{crypt:([^}]+)\}")

    def __init__(self, key: str | bytes | None) -> None:
        self._fernet: Fernet | None = None
        if key:
            raw = key.encode() if isinstance(key, str) else key
            try:
                self._fernet = Fernet(raw)
            except ValueError as exc:
                raise ConfigurationError(f"Invalid Fernet key for crypto processor: {exc}") from exc

    def encrypt(self, plaintext: str) -> str:
        if self._fernet is None:
            raise ConfigurationError("Crypto key is not configured")
        return "{crypt:" + self._fernet.encrypt(plaintext.encode()).decode() + "}"

    def transform(self, key: str, value: Any) -> Any:
        if not isinstance(value, str) or not self.MARKER.search(value):
            return value
        if self._fernet is None:
            raise ConfigurationError(
                f"Property `{key}` holds an encrypted value but no crypto key is configured"
            )
        return self.MARKER.sub(lambda m: self._decrypt(key, m.group(1)), value)

    def _decrypt(self, key: str, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as exc:
            raise ConfigurationError(f"Property `{key}` can't be decrypted with configured key") from exc


def default_processors(crypto_key: str | bytes | None = None) -> List[PropertyProcessor]:
    return [GenerateProcessor(), CryptoProcessor(crypto_key)]


class PropertyStore:
    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        processors: Sequence[PropertyProcessor] | None = None,
        ignored: Iterable[ProcessorKind] = (),
    ) -> None:
        self._values: Dict[str, Any] = {}
        self._processors: List[PropertyProcessor] = list(processors or [])
        self._ignored: set = {_kind_name(kind) for kind in ignored}
        self._frozen = False
        if values:
            self.update(values)

    @property
    def processors(self) -> Tuple[PropertyProcessor, ...]:
        return tuple(self._processors)

    @property
    def ignored_kinds(self) -> frozenset:
        return frozenset(self._ignored)

    def add_processor(self, processor: PropertyProcessor) -> None:
        self._processors.append(processor)

    def ignore(self, kind: ProcessorKind) -> None:
        if self._frozen:
            raise ConfigurationError(
                "Ignored property processors can't be changed after the store was used for rendering"
            )
        self._ignored.add(_kind_name(kind))

    def freeze(self) -> None:
        self._frozen = True

    def set(self, key: str, value: Any) -> None:
        for processor in self._processors:
            if processor.kind in self._ignored:
                continue
            value = processor.transform(key, value)
        self._values[key] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.set(str(key), value)

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._values.items()))

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def copy(self) -> "PropertyStore":
        clone = PropertyStore(processors=self._processors, ignored=self._ignored)
        clone._values = dict(self._values)
        return clone

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"PropertyStore({body})"


def _kind_name(kind: ProcessorKind) -> str:
    if isinstance(kind, type):
        return getattr(kind, "kind", kind.__name__)
    return str(kind)


def locate_resource(path: str | Path, roots: Sequence[str | Path] = ()) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        if candidate.is_file():
            return candidate
    else:
        for root in roots:
            resolved = Path(root) / candidate
            if resolved.is_file():
                return resolved
        if not roots and candidate.is_file():
            return candidate
    raise ResourceNotFoundError(str(path), list(roots))


def load_properties(
    path: str | Path,
    roots: Sequence[str | Path] = (),
) -> Dict[str, Any]:
    resource = locate_resource(path, roots)
    try:
        text = resource.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ResourceLoadError(str(path), str(exc)) from exc

    if resource.suffix.lower() in {".yaml", ".yml"}:
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ResourceLoadError(str(path), str(exc)) from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ResourceLoadError(str(path), "root must be a mapping")
        values = _flatten(raw)
    else:
        try:
            values = _parse_properties(text)
        except ValueError as exc:
            raise ResourceLoadError(str(path), str(exc)) from exc

    logger.info("Base properties loaded: %s", resource)
    return values


def _flatten(raw: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in raw.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)")
_SEPARATORS = "=: \t\f"


def _parse_properties(text: str) -> Dict[str, str]:
    """Parses ``java.util.Properties`` text.

    Keys end at the first unescaped ``=``, ``:`` or whitespace. A trailing
    odd backslash continues the line, and the continuation's leading
    whitespace is dropped.
    """
    values: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_property(line)
        values[_unescape(key)] = _unescape(value)
    return values


def _logical_lines(text: str) -> Iterator[str]:
    pending: str | None = None
    for raw_line in text.splitlines():
        line = raw_line.lstrip(" \t\f")
        if pending is None and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending:
        yield pending


def _split_property(line: str) -> Tuple[str, str]:
    index = 0
    while index < len(line) and line[index] not in _SEPARATORS:
        index += 2 if line[index] == "\\" else 1
    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def _unescape(text: str) -> str:
    def replace(match: re.Match) -> str:
        escaped = match.group(1)
        if len(escaped) == 5:
            return chr(int(escaped[1:], 16))
        if escaped == "u":
            raise ValueError(f"Malformed \\uxxxx escape in `{text}`")
        return _ESCAPES.get(escaped, escaped)

    return _ESCAPE.sub(replace, text)
