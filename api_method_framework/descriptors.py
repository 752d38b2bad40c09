from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator


class ContentKind(str, Enum):
    JSON = "json"
    XML = "xml"

    @classmethod
    def parse(cls, raw: str | None) -> "ContentKind":
        if raw is None:
            return cls.JSON
        value = str(raw).strip().lower()
        # Accept mime types such as application/xml or text/xml; charset=utf-8
        if "xml" in value:
            return cls.XML
        if "json" in value:
            return cls.JSON
        raise ValueError(f"Unsupported content type `{raw}`. Allowed: json, xml")


@dataclass(frozen=True)
class MethodDescriptor:
    """Static description of one API method type.

    Everything here is resolved once when the method is constructed; request
    bodies and expectations are only rendered from the template paths later.
    """

    name: str
    http_method: str = "GET"
    path: str = "/"
    request_template: str | None = None
    response_template: str | None = None
    content_kind: ContentKind = ContentKind.JSON
    successful_status: int | None = None
    headers: Dict[str, str] = field(default_factory=dict)


class DescriptorRegistry:
    def __init__(self, descriptors: Dict[str, MethodDescriptor] | None = None) -> None:
        self._descriptors: Dict[str, MethodDescriptor] = dict(descriptors or {})

    def register(self, descriptor: MethodDescriptor) -> None:
        self._descriptors[descriptor.name] = descriptor

    def get(self, name: str) -> MethodDescriptor | None:
        return self._descriptors.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[MethodDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def resolve_request_template_path(self, name: str) -> str | None:
        descriptor = self._descriptors.get(name)
        return descriptor.request_template if descriptor else None

    def resolve_response_template_path(self, name: str) -> str | None:
        descriptor = self._descriptors.get(name)
        return descriptor.response_template if descriptor else None

    def resolve_successful_status(self, name: str) -> int | None:
        descriptor = self._descriptors.get(name)
        return descriptor.successful_status if descriptor else None

    def resolve_content_kind(self, name: str) -> ContentKind | None:
        descriptor = self._descriptors.get(name)
        return descriptor.content_kind if descriptor else None
