"""
Authenticate users against an LDAP directory and reconcile them with local
Django users.
"""

__version__ = "1.0.0"
