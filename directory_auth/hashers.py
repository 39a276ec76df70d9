"""
Salted SHA-1 (``{SSHA}``) password hashes in the format LDAP servers store in
``userPassword``.
"""

import binascii
import hashlib
import hmac
import os
from base64 import b64decode as decode
from base64 import b64encode as encode

#: The storage scheme tag LDAP servers expect in front of the encoded hash.
SSHA_TAG: str = "{SSHA}"
#: Number of random salt bytes appended to each hash.
SALT_LENGTH: int = 4
#: Length of a SHA-1 digest; anything after it in a decoded hash is salt.
DIGEST_LENGTH: int = hashlib.sha1().digest_size  # noqa: S324


def ssha(password: str, salt: bytes | None = None) -> str:
    """
    Generate an SSHA password hash for LDAP.

    A fresh salt is drawn from :py:func:`os.urandom` on every call, so hashing
    the same password twice gives two different strings.

    Args:
        password: The plaintext password to hash.

    Keyword Args:
        salt: Use this salt instead of a random one.  Only useful for
            reproducing a known hash.

    Returns:
        ``{SSHA}`` followed by the base64 encoding of ``digest + salt``.

    """
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    h = hashlib.sha1(password.encode("utf-8"))  # noqa: S324
    h.update(salt)
    return SSHA_TAG + encode(h.digest() + salt).decode("ascii")


def check_ssha(password: str, hashed: str | bytes) -> bool:
    """
    Check a plaintext password against an ``{SSHA}`` hash the way an LDAP
    server does during a bind.

    Args:
        password: The plaintext password.
        hashed: The stored hash, as returned by :py:func:`ssha` or read back
            from the directory.

    Returns:
        ``True`` if ``password`` produced ``hashed``, ``False`` otherwise
        (including when ``hashed`` is not an SSHA hash at all).

    """
    if isinstance(hashed, bytes):
        hashed = hashed.decode("utf-8", errors="replace")
    if hashed[: len(SSHA_TAG)].upper() != SSHA_TAG:
        return False
    try:
        raw = decode(hashed[len(SSHA_TAG) :], validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(raw) <= DIGEST_LENGTH:
        return False
    digest, salt = raw[:DIGEST_LENGTH], raw[DIGEST_LENGTH:]
    h = hashlib.sha1(password.encode("utf-8"))  # noqa: S324
    h.update(salt)
    return hmac.compare_digest(h.digest(), digest)
