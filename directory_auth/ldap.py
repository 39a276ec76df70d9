# Every module in this package talks to python-ldap through this module so that
# tests can patch ``directory_auth.ldap.initialize``.  python-ldap-faker patches
# ``<module>.ldap.initialize`` for each entry in ``ldap_modules``, which means it
# needs a package-local ``ldap`` module to patch.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
