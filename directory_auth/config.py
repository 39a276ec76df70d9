"""
Directory connection settings.

:py:class:`DirectoryConfig` holds the raw values from
``settings.DIRECTORY_AUTH``.  The search, add and modify operations each bind
with their own :py:class:`CredentialTier`; :py:func:`resolve_tiers` fills in
every unset add value from the search tier and every unset modify value from
the (already resolved) add tier.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from django.core.exceptions import ImproperlyConfigured

#: Keys that must be present in ``settings.DIRECTORY_AUTH``.
REQUIRED_KEYS = ("host", "basedn", "admin_dn")


class ModifyMethod(Enum):
    """
    How :py:meth:`~directory_auth.handlers.DirectoryHandler.modify_object`
    authenticates.

    ``SELF`` reuses whatever identity the connection is already bound as
    (usually the user changing their own entry); ``ADMIN`` rebinds with the
    modify tier credentials first.
    """

    SELF = "self"
    ADMIN = "admin"

    @classmethod
    def normalize(cls, value: Any) -> "ModifyMethod":
        """
        Map a configured value to a :py:class:`ModifyMethod`.

        Only the literal ``"admin"`` selects :py:attr:`ADMIN`.  Anything else,
        including typos and ``None``, selects :py:attr:`SELF` so that a bad
        setting never results in admin binds.
        """
        if value is cls.ADMIN or value == cls.ADMIN.value:
            return cls.ADMIN
        return cls.SELF


@dataclass(frozen=True)
class CredentialTier:
    """
    The subtree and bind credentials one kind of operation uses.
    """

    basedn: str
    dn: str
    password: str


@dataclass(frozen=True)
class Tiers:
    search: CredentialTier
    add: CredentialTier
    modify: CredentialTier


def resolve_tier(override: str | None, fallback: str) -> str:
    """
    Return ``override`` unless it is empty, in which case return ``fallback``.
    """
    if override:
        return override
    return fallback


@dataclass(frozen=True)
class DirectoryConfig:
    #: Hostname or LDAP URL of the directory server.
    host: str
    #: Pipe-delimited list of search base DNs, tried in order.  Empty entries
    #: are kept; with an overlay they mean "search the overlay itself".
    basedn: str
    #: DN used for admin (search) binds.
    admin_dn: str
    #: Password for :py:attr:`admin_dn`.
    admin_password: str = ""
    #: Root appended to every bind and search DN, if set.
    overlay_dn: str = ""
    #: LDAP protocol version.
    version: int = 3
    #: If ``True``, an empty password binds with the admin credentials.
    allow_no_pass: bool = False
    #: Attribute holding the identifier used to find local users.
    search_user_id: str = "employeeNumber"
    #: Attribute holding the username; also the RDN attribute for binds.
    search_username: str = "uid"
    #: Attribute holding the primary email address.
    search_user_mail: str = "mail"
    #: Multi-valued attribute holding email aliases.
    search_user_mail_array: str = "mailLocalAddress"
    #: Custom auth search filter; every ``%s`` is replaced by the search value.
    search_auth_query: str | None = None
    #: Attribute :py:meth:`modify_object_password` writes the hash to.
    password_attribute: str = "userPassword"
    add_basedn: str = ""
    add_dn: str = ""
    add_password: str = ""
    modify_method: ModifyMethod = ModifyMethod.SELF
    modify_basedn: str = ""
    modify_dn: str = ""
    modify_password: str = ""
    #: Network timeout in seconds, handed to the LDAP library.
    timeout: float = 15.0
    use_starttls: bool = False
    follow_referrals: bool = False
    #: Anything else from the settings dict that is not a connection setting
    #: (``user_id_prefix``, ``return_fake_user``, ...).
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        # frozen, so go through object.__setattr__
        object.__setattr__(
            self, "modify_method", ModifyMethod.normalize(self.modify_method)
        )

    @property
    def basedn_candidates(self) -> list[str]:
        return self.basedn.split("|")

    @property
    def auth_query(self) -> str:
        if self.search_auth_query:
            return self.search_auth_query
        return (
            f"(|({self.search_username}=%s)({self.search_user_mail}=%s)"
            f"({self.search_user_mail_array}=%s))"
        )

    @property
    def uri(self) -> str:
        if "://" in self.host:
            return self.host
        return f"ldap://{self.host}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DirectoryConfig":
        """
        Build a config from a ``settings.DIRECTORY_AUTH`` style dictionary.

        The add and modify overrides may be given either flat (``add_basedn``,
        ``modify_method``, ...) or as nested ``"add"`` and ``"modify"``
        dictionaries with ``basedn``, ``dn``, ``password`` (and ``method``)
        keys.

        Raises:
            ImproperlyConfigured: a required key is missing or empty.

        """
        data = dict(data)
        for prefix in ("add", "modify"):
            nested = data.pop(prefix, None) or {}
            for key, value in nested.items():
                data.setdefault(f"{prefix}_{key}", value)
        for key in REQUIRED_KEYS:
            if not data.get(key):
                msg = f"settings.DIRECTORY_AUTH has no '{key}' key"
                raise ImproperlyConfigured(msg)
        names = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in names and v is not None}
        if "version" in kwargs:
            kwargs["version"] = int(kwargs["version"])
        extra = {k: v for k, v in data.items() if k not in names}
        return cls(**kwargs, extra=extra)


def resolve_tiers(config: DirectoryConfig) -> Tiers:
    """
    Compute the effective credentials for each kind of operation.

    Search uses the first base DN candidate and the admin credentials.  Each
    add value falls back to the search value, and each modify value falls back
    to the resolved add value.
    """
    search = CredentialTier(
        basedn=config.basedn_candidates[0],
        dn=config.admin_dn,
        password=config.admin_password,
    )
    add = CredentialTier(
        basedn=resolve_tier(config.add_basedn, search.basedn),
        dn=resolve_tier(config.add_dn, search.dn),
        password=resolve_tier(config.add_password, search.password),
    )
    modify = CredentialTier(
        basedn=resolve_tier(config.modify_basedn, add.basedn),
        dn=resolve_tier(config.modify_dn, add.dn),
        password=resolve_tier(config.modify_password, add.password),
    )
    return Tiers(search=search, add=add, modify=modify)
