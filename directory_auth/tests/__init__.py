import django
from django.conf import settings

#: The ``DIRECTORY_AUTH`` setting the tests start from.  Individual tests patch
#: it as needed.
DIRECTORY_AUTH = {
    "host": "ldap://localhost:389",
    "basedn": "ou=people,dc=example,dc=com",
    "admin_dn": "cn=admin,dc=example,dc=com",
    "admin_password": "admin",
}

# Configure Django settings before anything touches the user model
if not settings.configured:
    settings.configure(
        INSTALLED_APPS=[
            "django.contrib.auth",
            "django.contrib.contenttypes",
        ],
        DATABASES={
            "default": {
                "ENGINE": "django.db.backends.sqlite3",
                "NAME": ":memory:",
            }
        },
        AUTHENTICATION_BACKENDS=["directory_auth.backends.DirectoryBackend"],
        DIRECTORY_AUTH=DIRECTORY_AUTH,
    )
    django.setup()
