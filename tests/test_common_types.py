import logging
import sys
import unittest
from pathlib import Path

# Ensure src/ is on sys.path so we can import the package without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tagsync.resources._common_types import (  # noqa: E402
    _join_tags,
    _normalize_identifier,
    _normalize_tag_list,
)
from tagsync.utils import short_id, unique_in_order  # noqa: E402


logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stdout,
    force=True,
)


class CommonTypesTests(unittest.TestCase):
    def test_normalize_tag_list_from_string(self):
        self.assertEqual(_normalize_tag_list("VIP, New,, VIP , "), ["VIP", "New"])

    def test_normalize_tag_list_from_list(self):
        self.assertEqual(_normalize_tag_list([" VIP", "New", "", None, "VIP"]), ["VIP", "New"])

    def test_normalize_tag_list_empty_inputs(self):
        self.assertEqual(_normalize_tag_list(None), [])
        self.assertEqual(_normalize_tag_list(""), [])
        self.assertEqual(_normalize_tag_list(12), [])

    def test_normalize_tag_list_is_case_sensitive(self):
        self.assertEqual(_normalize_tag_list("vip, VIP"), ["vip", "VIP"])

    def test_join_tags(self):
        self.assertEqual(_join_tags(["VIP", "New"]), "VIP, New")
        self.assertEqual(_join_tags([]), "")

    def test_normalize_identifier(self):
        self.assertEqual(_normalize_identifier("123"), "123")
        self.assertEqual(_normalize_identifier(123), "123")
        self.assertEqual(_normalize_identifier("gid://shopify/Customer/42"), "42")
        self.assertEqual(_normalize_identifier(" 7 "), "7")

    def test_normalize_identifier_rejects(self):
        self.assertIsNone(_normalize_identifier(""))
        self.assertIsNone(_normalize_identifier("   "))
        self.assertIsNone(_normalize_identifier(None))
        self.assertIsNone(_normalize_identifier(True))
        self.assertIsNone(_normalize_identifier(1.5))


class UtilsTests(unittest.TestCase):
    def test_unique_in_order(self):
        self.assertEqual(unique_in_order([3, 1, 3, 2, 1]), [3, 1, 2])

    def test_short_id(self):
        self.assertEqual(short_id("gid://shopify/Customer/99"), "99")
        self.assertEqual(short_id(5), "5")


if __name__ == "__main__":
    unittest.main()
