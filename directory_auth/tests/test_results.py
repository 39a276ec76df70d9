import unittest

from directory_auth.results import DirectoryRecord, SearchResult


class TestDirectoryRecord(unittest.TestCase):
    def setUp(self):
        self.record = DirectoryRecord.from_ldap(
            (
                "uid=alice,ou=people,dc=example,dc=com",
                {
                    "uid": [b"alice"],
                    "mailLocalAddress": [b"alice@example.com", b"aj@example.com"],
                    "jpegPhoto": [b"\xff\xd8\xff\xe0"],
                },
            )
        )

    def test_values_are_decoded(self):
        self.assertEqual(self.record.get("uid"), "alice")

    def test_binary_values_stay_bytes(self):
        self.assertEqual(self.record.get("jpegPhoto"), b"\xff\xd8\xff\xe0")

    def test_case_insensitive_lookup(self):
        self.assertTrue(self.record.has("MAILLOCALADDRESS"))
        self.assertIn("Uid", self.record)
        self.assertEqual(
            self.record.get_values("maillocaladdress"),
            ["alice@example.com", "aj@example.com"],
        )
        self.assertEqual(self.record.get("mailLocalAddress"), "alice@example.com")

    def test_missing_attribute(self):
        self.assertFalse(self.record.has("mail"))
        self.assertNotIn("mail", self.record)
        self.assertEqual(self.record.get_values("mail"), [])
        self.assertIsNone(self.record.get("mail"))
        self.assertEqual(self.record.get("mail", "n/a"), "n/a")

    def test_scalar_values_are_wrapped(self):
        record = DirectoryRecord("cn=x", {"cn": "x"})
        self.assertEqual(record.get_values("cn"), ["x"])


class TestSearchResult(unittest.TestCase):
    def test_empty(self):
        results = SearchResult()
        self.assertEqual(len(results), 0)
        self.assertFalse(results)
        self.assertEqual(list(results), [])

    def test_from_ldap_drops_references(self):
        results = SearchResult.from_ldap(
            [
                ("uid=alice,dc=example,dc=com", {"uid": [b"alice"]}),
                ("uid=bob,dc=example,dc=com", {"uid": [b"bob"]}),
                (None, ["ldap://other.example.com/dc=example,dc=com"]),
            ]
        )
        self.assertEqual(len(results), 2)
        self.assertTrue(results)
        self.assertEqual([r.dn for r in results], [
            "uid=alice,dc=example,dc=com",
            "uid=bob,dc=example,dc=com",
        ])
        self.assertEqual(results[1].get("uid"), "bob")
