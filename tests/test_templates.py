import json
import unittest
from pathlib import Path

from api_method_framework.errors import ConfigurationError, ResourceNotFoundError, TemplateRenderError
from api_method_framework.properties import PropertyStore
from api_method_framework.templates import TemplateRenderer

RESOURCES = Path(__file__).parent / "resources"


class TemplateRendererTests(unittest.TestCase):
    def setUp(self) -> None:
        self.renderer = TemplateRenderer([RESOURCES / "templates"])
        self.store = PropertyStore({"user.name": "alice", "user.email": "alice@example.com"})

    def test_render_resolves_dotted_properties(self) -> None:
        text = self.renderer.render("user_rq.json", self.store)
        self.assertEqual(text.strip(), '{"name": "alice", "email": "alice@example.com"}')

    def test_render_is_idempotent(self) -> None:
        first = self.renderer.render("user_rs.json", self.store)
        second = self.renderer.render("user_rs.json", self.store)
        self.assertEqual(first, second)

    def test_unresolved_placeholder_is_an_error(self) -> None:
        with self.assertRaises(TemplateRenderError):
            self.renderer.render("unresolved.json", self.store)

    def test_missing_nested_attribute_is_an_error(self) -> None:
        with self.assertRaises(TemplateRenderError):
            self.renderer.render_string("${user.phone}", self.store)

    def test_missing_template(self) -> None:
        with self.assertRaises(ResourceNotFoundError):
            self.renderer.render("nope.json", self.store)

    def test_absolute_template_path(self) -> None:
        path = RESOURCES / "templates" / "user_rq.json"
        text = self.renderer.render(str(path.resolve()), self.store)
        self.assertIn('"alice"', text)

    def test_conflicting_dotted_keys(self) -> None:
        store = PropertyStore({"user": "plain", "user.name": "alice"})
        with self.assertRaises(TemplateRenderError):
            self.renderer.render_string("${user}", store)

    def test_read_returns_raw_text(self) -> None:
        raw = self.renderer.read("user_schema.json")
        self.assertIn("${min_id}", raw)

    def test_render_freezes_ignored_processors(self) -> None:
        self.renderer.render_string("static", self.store)
        with self.assertRaises(ConfigurationError):
            self.store.ignore("generate")

    def test_json_braces_are_not_placeholders(self) -> None:
        text = self.renderer.render_string('{"a": {"b": [1, {"c": "${user.name}"}]}}', self.store)
        self.assertEqual(text, '{"a": {"b": [1, {"c": "alice"}]}}')

    def test_hash_and_percent_braces_are_literal(self) -> None:
        for body in ('{"color": "{#fff}"}', '{"fmt": "{%d}"}', '{"note": "{# not a comment #}", "s": "{% raw %}"}'):
            with self.subTest(body=body):
                self.assertEqual(self.renderer.render_string(body, self.store), body)

    def test_booleans_and_none_render_as_json(self) -> None:
        store = PropertyStore({"active": True, "nick": None, "retries": 3})
        text = self.renderer.render_string('{"active": ${active}, "nick": ${nick}, "retries": ${retries}}', store)
        self.assertEqual(json.loads(text), {"active": True, "nick": None, "retries": 3})


if __name__ == "__main__":
    unittest.main()
