from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from api_method_framework.errors import ResourceLoadError, TemplateRenderError
from api_method_framework.properties import PropertyStore, locate_resource

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders ``${placeholder}`` templates against a property store.

    Templates are looked up by logical path under the configured roots.
    Dotted property keys such as ``user.name`` are exposed as nested objects,
    so ``${user.name}`` resolves the same way it reads. Any placeholder that
    can't be resolved fails the render; partially rendered bodies are never
    returned.
    """

    def __init__(self, roots: Sequence[str | Path] = (".",)) -> None:
        self.roots: List[Path] = [Path(root) for root in roots]
        self._env = Environment(
            loader=FileSystemLoader([str(root) for root in self.roots]),
            undefined=StrictUndefined,
            variable_start_string="${",
            variable_end_string="}",
            block_start_string="${%",
            block_end_string="%}",
            comment_start_string="${#",
            comment_end_string="#}",
            finalize=_json_literal,
            autoescape=False,
            keep_trailing_newline=True,
        )

    def render(self, template_ref: str, store: PropertyStore) -> str:
        try:
            template = self._env.get_template(template_ref)
        except TemplateNotFound:
            # Absolute paths are outside the loader; anything else is missing.
            return self.render_string(self.read(template_ref), store)
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(f"Template `{template_ref}` is invalid: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceLoadError(template_ref, str(exc)) from exc
        return self._render(template_ref, template, store)

    def render_string(self, text: str, store: PropertyStore) -> str:
        try:
            template = self._env.from_string(text)
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(f"Inline template is invalid: {exc}") from exc
        return self._render("<inline>", template, store)

    def read(self, template_ref: str) -> str:
        """Returns the template text as-is, without placeholder resolution."""
        resource = locate_resource(template_ref, self.roots)
        try:
            return resource.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceLoadError(template_ref, str(exc)) from exc

    def _render(self, name: str, template: Any, store: PropertyStore) -> str:
        store.freeze()
        context = build_context(store)
        try:
            text = template.render(**context)
        except UndefinedError as exc:
            raise TemplateRenderError(f"Template `{name}` has unresolved placeholder: {exc}") from exc
        logger.debug("Rendered template %s (%d chars)", name, len(text))
        return text


def _json_literal(value: Any) -> Any:
    """Booleans and None render as their JSON spellings."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def build_context(store: PropertyStore) -> Dict[str, Any]:
    context: Dict[str, Any] = {}
    for key, value in store.items():
        parts = key.split(".")
        node = context
        for depth, part in enumerate(parts[:-1]):
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise TemplateRenderError(
                    f"Property `{key}` conflicts with property `{'.'.join(parts[: depth + 1])}`"
                )
            node = child
        leaf = parts[-1]
        if isinstance(node.get(leaf), dict):
            raise TemplateRenderError(f"Property `{key}` conflicts with nested properties under it")
        node[leaf] = value
    return context
