import json
import unittest
from pathlib import Path

from api_method_framework.errors import ConfigurationError, ResponseMismatchError
from api_method_framework.json_compare import JsonComparator
from api_method_framework.properties import PropertyStore
from api_method_framework.schema import validate_json_against_schema, validate_xml_against_schema
from api_method_framework.templates import TemplateRenderer

RESOURCES = Path(__file__).parent / "resources"


class JsonSchemaTests(unittest.TestCase):
    def setUp(self) -> None:
        renderer = TemplateRenderer([RESOURCES / "templates"])
        self.store = PropertyStore({"min_id": 1, "user.name": "alice", "user.email": "a@example.com"})
        self.schema = renderer.render("user_schema.json", self.store)
        self.exemplar = renderer.render("user_rs.json", self.store)

    def test_conforming_body_passes(self) -> None:
        body = json.dumps({"id": 3, "name": "alice", "email": "a@example.com", "tags": ["a", "b"]})
        validate_json_against_schema(self.schema, body)

    def test_all_violations_are_reported(self) -> None:
        body = json.dumps({"id": 0, "name": 5})
        with self.assertRaises(ResponseMismatchError) as ctx:
            validate_json_against_schema(self.schema, body)
        diff = "\n".join(ctx.exception.diff)
        self.assertIn("'email' is a required property", diff)
        self.assertIn("$.id", diff)
        self.assertIn("$.name", diff)

    def test_invalid_schema_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            validate_json_against_schema('{"type": 12}', "{}")
        with self.assertRaises(ConfigurationError):
            validate_json_against_schema("not json", "{}")

    def test_schema_and_exemplar_agree_on_conforming_body(self) -> None:
        body = json.dumps({"id": 9, "name": "alice", "email": "a@example.com", "tags": ["b", "a"]})
        JsonComparator().assert_matches(self.exemplar, body)
        validate_json_against_schema(self.schema, body)

    def test_schema_and_exemplar_agree_on_broken_body(self) -> None:
        body = json.dumps({"id": "9", "name": "alice", "email": "a@example.com", "tags": ["a", "b"]})
        with self.assertRaises(ResponseMismatchError):
            JsonComparator().assert_matches(self.exemplar, body)
        with self.assertRaises(ResponseMismatchError):
            validate_json_against_schema(self.schema, body)


class XmlSchemaTests(unittest.TestCase):
    def setUp(self) -> None:
        self.xsd = (RESOURCES / "templates" / "user.xsd").read_text(encoding="utf-8")

    def test_conforming_document_passes(self) -> None:
        validate_xml_against_schema(self.xsd, '<user id="3"><name>a</name><tags><tag>x</tag></tags></user>')

    def test_violation_is_reported(self) -> None:
        with self.assertRaises(ResponseMismatchError) as ctx:
            validate_xml_against_schema(self.xsd, '<user id="0"><name>a</name></user>')
        self.assertTrue(ctx.exception.diff)

    def test_invalid_schema_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            validate_xml_against_schema("<notaschema/>", "<user/>")


if __name__ == "__main__":
    unittest.main()
