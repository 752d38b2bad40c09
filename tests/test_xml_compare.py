import unittest

from api_method_framework.errors import ConfigurationError, ResponseMismatchError
from api_method_framework.xml_compare import XmlComparator, XmlCompareMode

EXPECTED = """
<user id="1">
  <name>alice</name>
  <roles><role>admin</role><role>user</role></roles>
</user>
"""

REORDERED = '<user id="1"><roles><role>user</role><role>admin</role></roles><name>alice</name></user>'
OTHER_ATTR = '<user id="2"><name>alice</name><roles><role>admin</role><role>user</role></roles></user>'


class XmlCompareTests(unittest.TestCase):
    def test_identical_documents_ignore_whitespace(self) -> None:
        actual = '<user id="1"><name> alice </name><roles><role>admin</role><role>user</role></roles></user>'
        self.assertEqual(XmlComparator(XmlCompareMode.STRICT).compare_text(EXPECTED, actual), [])

    def test_strict_mode_requires_child_order(self) -> None:
        failures = XmlComparator(XmlCompareMode.STRICT).compare_text(EXPECTED, REORDERED)
        self.assertTrue(failures)

    def test_non_strict_mode_ignores_child_order(self) -> None:
        self.assertEqual(XmlComparator(XmlCompareMode.NON_STRICT).compare_text(EXPECTED, REORDERED), [])

    def test_non_strict_mode_checks_attributes(self) -> None:
        failures = XmlComparator(XmlCompareMode.NON_STRICT).compare_text(EXPECTED, OTHER_ATTR)
        self.assertEqual(failures, ["/user/@id: Expected '1' got '2'"])

    def test_lenient_mode_ignores_attributes(self) -> None:
        self.assertEqual(XmlComparator(XmlCompareMode.LENIENT).compare_text(EXPECTED, OTHER_ATTR), [])

    def test_text_and_child_count_mismatch(self) -> None:
        actual = '<user id="1"><name>bob</name><roles><role>admin</role></roles></user>'
        failures = XmlComparator().compare_text(EXPECTED, actual)
        self.assertIn("/user/name[1]: Expected text 'alice' got 'bob'", failures)
        self.assertIn("/user/roles[2]: Expected 2 child elements but got 1", failures)

    def test_assert_matches_raises_with_diff(self) -> None:
        with self.assertRaises(ResponseMismatchError) as ctx:
            XmlComparator().assert_matches(EXPECTED, "<account/>")
        self.assertEqual(ctx.exception.diff, ["/user: Expected element <user> got <account>"])

    def test_invalid_actual_xml(self) -> None:
        with self.assertRaises(ResponseMismatchError):
            XmlComparator().assert_matches(EXPECTED, "{}")

    def test_invalid_expected_xml(self) -> None:
        with self.assertRaises(ConfigurationError):
            XmlComparator().assert_matches("<user>", "<user/>")

    def test_parse_mode(self) -> None:
        self.assertIs(XmlCompareMode.parse("non_strict"), XmlCompareMode.NON_STRICT)
        with self.assertRaises(ConfigurationError):
            XmlCompareMode.parse("loose")


if __name__ == "__main__":
    unittest.main()
