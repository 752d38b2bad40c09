import tempfile
import textwrap
import unittest
from pathlib import Path

from api_method_framework.config_loader import SpecValidationError, load_engine_spec
from api_method_framework.descriptors import ContentKind
from api_method_framework.errors import ConfigurationError
from api_method_framework.json_compare import JsonCompareMode
from api_method_framework.poller import LogStrategy
from api_method_framework.xml_compare import XmlCompareMode

VALID_SPEC = """
base_url: "http://127.0.0.1:5000/"
template_dirs: templates
methods:
  create_user:
    method: post
    path: /users
    request_template: users/create_rq.json
    response_template: users/create_rs.json
    successful_status: 201
  get_user_xml:
    path: /users/${user_id}/xml
    content_type: application/xml
suite:
  - method: create_user
    expect_success: true
    validate:
      mode: lenient
      flags: ["ARRAY_CONTAINS:$.roles"]
  - method: get_user_xml
    retry:
      status: 200
      log_strategy: last_only
    validate:
      xml_mode: non_strict
"""


class ConfigLoaderTests(unittest.TestCase):
    def _write_spec(self, content: str) -> Path:
        tmp = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
        tmp.write(textwrap.dedent(content))
        tmp.flush()
        tmp.close()
        path = Path(tmp.name)
        self.addCleanup(path.unlink, missing_ok=True)
        return path

    def test_load_valid_spec(self) -> None:
        path = self._write_spec(VALID_SPEC)

        spec = load_engine_spec(path)
        self.assertEqual(spec.base_url, "http://127.0.0.1:5000")
        self.assertEqual(len(spec.methods), 2)

        create = spec.methods.get("create_user")
        self.assertEqual(create.http_method, "POST")
        self.assertEqual(spec.methods.resolve_successful_status("create_user"), 201)
        self.assertEqual(spec.methods.resolve_request_template_path("create_user"), "users/create_rq.json")
        self.assertIs(spec.methods.resolve_content_kind("get_user_xml"), ContentKind.XML)
        self.assertIsNone(spec.methods.resolve_successful_status("get_user_xml"))
        self.assertIsNone(spec.methods.resolve_response_template_path("missing"))

    def test_suite_steps(self) -> None:
        spec = load_engine_spec(self._write_spec(VALID_SPEC))

        first, second = spec.suite
        self.assertTrue(first.expect_success)
        self.assertIs(first.validate.mode, JsonCompareMode.LENIENT)
        self.assertEqual(first.validate.flags, ["ARRAY_CONTAINS:$.roles"])
        self.assertIsNone(first.retry)

        self.assertEqual(second.retry.status, 200)
        self.assertIs(second.retry.log_strategy, LogStrategy.LAST_ONLY)
        self.assertEqual(second.retry.timeout_seconds, spec.poll.timeout_seconds)
        self.assertIs(second.validate.xml_mode, XmlCompareMode.NON_STRICT)

    def test_template_dirs_are_relative_to_spec_file(self) -> None:
        path = self._write_spec(VALID_SPEC)
        spec = load_engine_spec(path)
        self.assertEqual(spec.template_dirs, [(path.parent / "templates").resolve()])

    def test_rejects_invalid_method(self) -> None:
        path = self._write_spec(
            """
            base_url: "http://127.0.0.1:5000"
            methods:
              create_user:
                method: TRACE
                path: /users
            """
        )

        with self.assertRaises(SpecValidationError):
            load_engine_spec(path)

    def test_rejects_relative_path(self) -> None:
        path = self._write_spec(
            """
            base_url: "http://127.0.0.1:5000"
            methods:
              create_user:
                path: users
            """
        )

        with self.assertRaises(SpecValidationError):
            load_engine_spec(path)

    def test_rejects_unknown_suite_method(self) -> None:
        path = self._write_spec(
            """
            base_url: "http://127.0.0.1:5000"
            methods:
              create_user:
                path: /users
            suite:
              - method: delete_user
            """
        )

        with self.assertRaises(SpecValidationError) as ctx:
            load_engine_spec(path)
        self.assertIn("suite[0].method", str(ctx.exception))

    def test_rejects_unknown_flag(self) -> None:
        path = self._write_spec(
            """
            base_url: "http://127.0.0.1:5000"
            methods:
              create_user:
                path: /users
            suite:
              - method: create_user
                validate:
                  flags: [IGNORE_ORDER]
            """
        )

        with self.assertRaises(SpecValidationError):
            load_engine_spec(path)

    def test_rejects_negative_poll_timeout(self) -> None:
        path = self._write_spec(
            """
            base_url: "http://127.0.0.1:5000"
            poll:
              timeout_seconds: -1
            methods:
              create_user:
                path: /users
            """
        )

        with self.assertRaises(SpecValidationError):
            load_engine_spec(path)

    def test_missing_file_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_engine_spec("/nonexistent/engine.yaml")


if __name__ == "__main__":
    unittest.main()
