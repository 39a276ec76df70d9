# mypy: disable-error-code="attr-defined"
# type: ignore
"""
DirectoryBackend against a python-ldap-faker directory.  Local user lookups
are patched out so the tests don't need a database.
"""

import unittest
from types import SimpleNamespace
from unittest.mock import patch

from ldap_faker.unittest import LDAPFakerMixin

from directory_auth.backends import DirectoryBackend
from directory_auth.handlers import DirectoryHandler
from directory_auth.reconcilers import IdentityReconciler

DIRECTORY_AUTH = {
    "host": "ldap://localhost:389",
    "basedn": "ou=people,dc=example,dc=com|ou=staff,dc=example,dc=com",
    "admin_dn": "cn=admin,dc=example,dc=com",
    "admin_password": "admin",
}


class TestDirectoryBackend(LDAPFakerMixin, unittest.TestCase):
    ldap_modules = ["directory_auth"]

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.test_objects = [
            [
                "cn=admin,dc=example,dc=com",
                {
                    "cn": [b"admin"],
                    "userPassword": [b"admin"],
                    "objectclass": [b"simpleSecurityObject", b"organizationalRole", b"top"],
                },
            ],
            [
                "uid=alice,ou=people,dc=example,dc=com",
                {
                    "uid": [b"alice"],
                    "employeeNumber": [b"1001"],
                    "givenName": [b"Alice"],
                    "sn": [b"Johnson"],
                    "mail": [b"alice@example.com"],
                    "userPassword": [b"password"],
                    "objectclass": [b"inetOrgPerson", b"top"],
                },
            ],
            [
                "uid=newbie,ou=staff,dc=example,dc=com",
                {
                    "uid": [b"newbie"],
                    "employeeNumber": [b"5001"],
                    "mail": [b"new@x.com"],
                    "userPassword": [b"newpw"],
                    "objectclass": [b"inetOrgPerson", b"top"],
                },
            ],
        ]

    def setUp(self):
        super().setUp()
        if not hasattr(self, "ldap_faker"):
            LDAPFakerMixin.setUp(self)
        self.server_factory.default.raw_objects.clear()
        self.server_factory.default.objects.clear()
        for dn, attrs in self.test_objects:
            self.server_factory.default.register_object((dn, attrs))

        self.local_users = {
            "1001": SimpleNamespace(username="1001", is_active=True),
        }
        self.lookup_patcher = patch.object(
            IdentityReconciler, "lookup_user", side_effect=self.local_users.get
        )
        self.lookup_patcher.start()
        self.backend = DirectoryBackend()

    def tearDown(self):
        self.lookup_patcher.stop()
        super().tearDown()

    def settings(self, **kwargs):
        return patch("django.conf.settings.DIRECTORY_AUTH", {**DIRECTORY_AUTH, **kwargs})

    def test_success(self):
        with self.settings():
            user = self.backend.authenticate(None, username="alice", password="password")
        self.assertIs(user, self.local_users["1001"])
        self.assertTrue(user.is_valid)

    def test_email_does_not_bind(self):
        # binds are always <username attribute>=<username>, so an email fails
        with self.settings():
            self.assertIsNone(
                self.backend.authenticate(None, username="alice@example.com", password="password")
            )

    def test_wrong_password(self):
        with self.settings():
            self.assertIsNone(
                self.backend.authenticate(None, username="alice", password="wrong")
            )

    def test_no_such_user(self):
        with self.settings():
            self.assertIsNone(
                self.backend.authenticate(None, username="nobody", password="password")
            )

    def test_no_username(self):
        with self.settings():
            self.assertIsNone(self.backend.authenticate(None, password="password"))

    def test_empty_password_rejected(self):
        with self.settings():
            self.assertIsNone(self.backend.authenticate(None, username="alice", password=""))

    def test_empty_password_allowed(self):
        with self.settings(allow_no_pass=True):
            user = self.backend.authenticate(None, username="alice", password="")
        self.assertIs(user, self.local_users["1001"])

    def test_directory_user_without_local_user(self):
        with self.settings():
            self.assertIsNone(
                self.backend.authenticate(None, username="newbie", password="newpw")
            )

    def test_fake_user(self):
        with self.settings(return_fake_user=True):
            user = self.backend.authenticate(None, username="newbie", password="newpw")
        self.assertFalse(user.is_valid)
        self.assertEqual(user.search_attributes["email"], "new@x.com")
        self.assertEqual(user.search_attributes["user_id"], "5001")

    def test_user_id_prefix(self):
        self.local_users["staff:5001"] = SimpleNamespace(username="staff:5001", is_active=True)
        with self.settings(user_id_prefix="staff:"):
            user = self.backend.authenticate(None, username="newbie", password="newpw")
        self.assertIs(user, self.local_users["staff:5001"])

    def test_inactive_user(self):
        self.local_users["5001"] = SimpleNamespace(username="5001", is_active=False)
        with self.settings():
            self.assertIsNone(
                self.backend.authenticate(None, username="newbie", password="newpw")
            )

    def test_get_handler_and_reconciler(self):
        with self.settings(user_id_prefix="staff:", local_user_field="email"):
            handler = self.backend.get_handler()
        self.assertIsInstance(handler, DirectoryHandler)
        self.assertEqual(handler.config.host, "ldap://localhost:389")
        reconciler = self.backend.get_reconciler(handler)
        self.assertIs(reconciler.handler, handler)
        self.assertEqual(reconciler.user_id_prefix, "staff:")
        self.assertEqual(reconciler.local_user_field, "email")
        self.assertFalse(reconciler.return_fake_user)
