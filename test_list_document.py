import unittest

from token_list.config.config import Config
from token_list.processors import build_list_document, bump_version

TOKENS = [{"chainId": 1, "address": "0x" + "11" * 20, "symbol": "ONE"}]


class TestBumpVersion(unittest.TestCase):

    def test_default_when_missing(self):
        self.assertEqual(bump_version(None), {"major": 1, "minor": 0, "patch": 0})

    def test_patch_bump(self):
        self.assertEqual(bump_version({"major": 2, "minor": 3, "patch": 4}), {"major": 2, "minor": 3, "patch": 5})


class TestBuildListDocument(unittest.TestCase):

    def test_first_document(self):
        doc = build_list_document(TOKENS, [], now=1700000000)

        self.assertEqual(doc["name"], Config.TOKEN_LIST_NAME)
        self.assertEqual(doc["timestamp"], "1700000000")
        self.assertEqual(doc["version"], {"major": 1, "minor": 0, "patch": 0})
        self.assertEqual(doc["rootTokens"], [])
        self.assertNotIn("tags", doc)

    def test_unchanged_content_keeps_version_and_timestamp(self):
        previous = build_list_document(TOKENS, [], now=1700000000)
        previous["version"] = {"major": 1, "minor": 0, "patch": 7}

        doc = build_list_document(TOKENS, [], previous=previous, now=1800000000)

        self.assertEqual(doc["version"], {"major": 1, "minor": 0, "patch": 7})
        self.assertEqual(doc["timestamp"], "1700000000")

    def test_changed_content_bumps_patch(self):
        previous = build_list_document(TOKENS, [], now=1700000000)
        changed = TOKENS + [{"chainId": 10, "address": "0x" + "22" * 20, "symbol": "TWO"}]

        doc = build_list_document(changed, [], previous=previous, now=1800000000)

        self.assertEqual(doc["version"], {"major": 1, "minor": 0, "patch": 1})
        self.assertEqual(doc["timestamp"], "1800000000")

    def test_inactive_document(self):
        doc = build_list_document(TOKENS, inactive=True, now=1700000000)

        self.assertEqual(doc["name"], Config.INACTIVE_TOKEN_LIST_NAME)
        self.assertEqual(doc["tags"], {})
        self.assertNotIn("rootTokens", doc)


if __name__ == '__main__':
    unittest.main()
