"""
The directory handler: connecting, binding, searching, adding and modifying
entries in an LDAP directory.

A :py:class:`DirectoryHandler` owns at most one python-ldap connection at a
time.  It is not thread-safe; use one handler per authentication or
modification flow.
"""

import dataclasses
import logging
from contextlib import suppress
from typing import Any

from ldap import modlist
from ldap.dn import escape_dn_chars
from ldap.filter import escape_filter_chars
from ldap_filter import Filter

from directory_auth import ldap

from .config import DirectoryConfig, ModifyMethod, Tiers, resolve_tiers
from .exceptions import NotConnected
from .hashers import ssha
from .results import DirectoryRecord, SearchResult
from .typing import AddModlist, AttributeValues, ModifyModlist

logger = logging.getLogger("django-directory-auth")

#: The errors a bind raises when the DN/password pair is wrong for the subtree
#: we tried.  Anything else a bind raises is a transport or protocol problem.
BIND_ERRORS: tuple[type[Exception], ...] = (
    ldap.INVALID_CREDENTIALS,  # type: ignore[attr-defined]
    ldap.INAPPROPRIATE_AUTH,  # type: ignore[attr-defined]
    ldap.UNWILLING_TO_PERFORM,  # type: ignore[attr-defined]
    ldap.INVALID_DN_SYNTAX,  # type: ignore[attr-defined]
    ldap.NO_SUCH_OBJECT,  # type: ignore[attr-defined]
)


def join_dn(*parts: str) -> str:
    """
    Join DN fragments with commas, skipping empty ones.
    """
    return ",".join(part for part in parts if part)


def _to_bytes(value: AttributeValues) -> list[bytes]:
    """
    Convert a scalar or multi-valued attribute value to the list of bytes
    python-ldap wants.
    """
    if value is None:
        return []
    if not isinstance(value, list | tuple):
        value = [value]
    return [v if isinstance(v, bytes) else str(v).encode("utf-8") for v in value]


class DirectoryHandler:
    """
    Talks to the directory described by a :py:class:`DirectoryConfig`.

    Binds come in three flavours, each with its own credentials:

    * search: the admin DN and password from the config
    * add: the add tier, defaulting to the search tier
    * modify: the modify tier, defaulting to the add tier, and only used when
      the modify method is ``admin``

    Args:
        config: The directory settings.

    """

    def __init__(self, config: DirectoryConfig) -> None:
        self.logger = logger
        self.config = config
        self.tiers: Tiers = resolve_tiers(config)
        self.connection: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]

    # -----------------------
    # Configuration
    # -----------------------

    def _replace(self, **changes: Any) -> None:
        self.config = dataclasses.replace(self.config, **changes)
        self.tiers = resolve_tiers(self.config)

    def can_allow_no_pass(self) -> bool:
        return self.config.allow_no_pass

    def set_allow_no_pass(self, allow_no_pass: bool) -> None:
        self._replace(allow_no_pass=bool(allow_no_pass))

    def set_auth_query(self, search_auth_query: str | None) -> None:
        """
        Set the filter template :py:meth:`search_by_auth` uses.  Every ``%s``
        in it is replaced by the search value.
        """
        self._replace(search_auth_query=search_auth_query or None)

    def set_basedn(self, basedn: str) -> None:
        self._replace(basedn=basedn)

    def set_version(self, version: int) -> None:
        self._replace(version=int(version))

    def set_overlay_dn(self, overlay_dn: str) -> None:
        self._replace(overlay_dn=overlay_dn or "")

    def set_add_basedn(self, add_basedn: str) -> None:
        """
        Set the subtree new entries go into.  Empty means "use the search base
        DN".
        """
        self._replace(add_basedn=add_basedn or "")

    def set_add_dn(self, add_dn: str) -> None:
        self._replace(add_dn=add_dn or "")

    def set_add_password(self, add_password: str) -> None:
        self._replace(add_password=add_password or "")

    def set_modify_method(self, modify_method: str | ModifyMethod) -> None:
        """
        Set the modify method.  Anything but ``"admin"`` becomes ``"self"``.
        """
        self._replace(modify_method=ModifyMethod.normalize(modify_method))

    def set_modify_basedn(self, modify_basedn: str) -> None:
        """
        Set the subtree modified entries live in.  Empty means "use the add
        base DN".
        """
        self._replace(modify_basedn=modify_basedn or "")

    def set_modify_dn(self, modify_dn: str) -> None:
        self._replace(modify_dn=modify_dn or "")

    def set_modify_password(self, modify_password: str) -> None:
        self._replace(modify_password=modify_password or "")

    # -----------------------
    # DN helpers
    # -----------------------

    @property
    def admin_bind_dn(self) -> str:
        return join_dn(self.config.admin_dn, self.config.overlay_dn)

    def search_bases(self) -> list[str]:
        """
        Return the search base DNs in the order they should be tried, with the
        overlay applied: appended to each non-empty base DN, or used on its own
        in place of an empty one.
        """
        return [
            join_dn(basedn, self.config.overlay_dn)
            for basedn in self.config.basedn_candidates
        ]

    @property
    def basedn(self) -> str:
        """
        The base DN for single-subtree searches: the first candidate, with the
        overlay applied.
        """
        return self.search_bases()[0]

    def user_dn(self, username: str, basedn: str = "") -> str:
        """
        Build ``<username attribute>=<username>,<basedn>,<overlay>`` for a user
        bind, leaving out whatever is empty.
        """
        rdn = f"{self.config.search_username}={escape_dn_chars(username)}"
        return join_dn(rdn, basedn, self.config.overlay_dn)

    def object_dn(self, identifier: str, basedn: str) -> str:
        """
        Return the DN an add or modify of ``identifier`` acts on.

        An identifier containing a comma is already a DN and is returned
        unchanged; otherwise it becomes the RDN value under ``basedn``.
        """
        if "," in identifier:
            return identifier
        rdn = f"{self.config.search_username}={escape_dn_chars(identifier)}"
        return join_dn(rdn, basedn)

    # -----------------------
    # Connections
    # -----------------------

    def _open(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Drop any existing connection and open a fresh, unbound one.
        """
        self.disconnect()
        config = self.config
        ldap_object = ldap.initialize(config.uri)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_PROTOCOL_VERSION, config.version)  # type: ignore[attr-defined]
        if config.follow_referrals:
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(config.timeout))  # type: ignore[attr-defined]
        if config.use_starttls:
            ldap_object.start_tls_s()
        self.connection = ldap_object
        return ldap_object

    def _ensure_connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        if self.connection is None:
            return self._open()
        return self.connection

    def has_connection(self) -> bool:
        return self.connection is not None

    def disconnect(self) -> None:
        """
        Unbind and forget the current connection, if any.
        """
        if self.connection is None:
            return
        with suppress(ldap.LDAPError):  # type: ignore[attr-defined]
            self.connection.unbind_s()
        self.connection = None

    def bind(self, dn: str, password: str) -> None:
        """
        Bind the open connection as ``dn``.

        Raises:
            NotConnected: there is no open connection.
            ldap.INVALID_CREDENTIALS: the server rejected the credentials.

        """
        if self.connection is None:
            msg = "Call connect() or connect_by_dn() before bind()."
            raise NotConnected(msg)
        self.connection.simple_bind_s(dn, password)

    def connect(self, username: str = "", password: str = "") -> bool:
        """
        Open a connection and bind.

        With no ``username``, bind once as the admin DN.  With a ``username``,
        try ``<username attribute>=<username>,<basedn>`` for each configured
        base DN in order and stop at the first bind that succeeds.  An empty
        ``password`` binds as the admin instead when ``allow_no_pass`` is set,
        and is sent as-is otherwise.

        Args:
            username: The user to bind as.
            password: The user's password.

        Returns:
            ``True`` if a bind succeeded, ``False`` if every bind was rejected.

        """
        self._open()
        if username:
            for basedn in self.config.basedn_candidates:
                dn = self.user_dn(username, basedn)
                secret = password or ""
                if not password and self.config.allow_no_pass:
                    dn = self.admin_bind_dn
                    secret = self.config.admin_password
                try:
                    self.bind(dn, secret)
                except BIND_ERRORS as e:
                    self.logger.debug(
                        "directory.connect.bind.rejected dn=%s error=%s",
                        dn,
                        type(e).__name__,
                    )
                    continue
                self.logger.info("directory.connect.success user=%s dn=%s", username, dn)
                return True
            # every base DN rejected us, or there were none to try
            self.logger.warning("directory.connect.invalid_credentials user=%s", username)
            return False
        try:
            self.bind(self.admin_bind_dn, self.config.admin_password)
        except BIND_ERRORS:
            self.logger.warning(
                "directory.connect.admin.invalid_credentials dn=%s", self.admin_bind_dn
            )
            return False
        self.logger.debug("directory.connect.admin.success dn=%s", self.admin_bind_dn)
        return True

    def connect_by_dn(self, dn: str, password: str = "") -> bool:
        """
        Open a connection and bind directly as ``dn``.

        An empty ``password`` binds as the admin instead when
        ``allow_no_pass`` is set.

        Returns:
            ``True`` if the bind succeeded, ``False`` if it was rejected.

        """
        self._open()
        if not password and self.config.allow_no_pass:
            dn = self.admin_bind_dn
            password = self.config.admin_password
        try:
            self.bind(dn, password or "")
        except BIND_ERRORS:
            self.logger.warning("directory.connect_by_dn.invalid_credentials dn=%s", dn)
            return False
        self.logger.info("directory.connect_by_dn.success dn=%s", dn)
        return True

    # -----------------------
    # Searching
    # -----------------------

    def search(
        self,
        basedn: str,
        searchfilter: str,
        attributes: list[str] | None = None,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
    ) -> SearchResult:
        """
        Run one search and wrap the entries in a :py:class:`SearchResult`.

        A base DN that does not exist gives an empty result rather than
        ``ldap.NO_SUCH_OBJECT``.

        Args:
            basedn: The base DN to search from.
            searchfilter: The LDAP search filter string.

        Keyword Args:
            attributes: Attributes to retrieve; ``None`` means all of them.
            scope: LDAP search scope.

        """
        connection = self._ensure_connection()
        try:
            data = connection.search_s(
                basedn, scope, filterstr=searchfilter, attrlist=attributes
            )
        except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
            return SearchResult()
        return SearchResult.from_ldap(data)

    def auth_filter(self, value: str) -> str:
        """
        Fill the auth search filter template, replacing every ``%s`` with
        ``value`` escaped for use in a filter.
        """
        return self.config.auth_query.replace("%s", escape_filter_chars(value))

    def search_by_auth(self, value: str) -> SearchResult:
        """
        Search every base DN, in order, for an entry whose username, email or
        email alias is ``value``.

        Returns:
            The first non-empty result.  If no base DN matched, the (empty)
            result from the last one.

        """
        searchfilter = self.auth_filter(value)
        results = SearchResult()
        for basedn in self.search_bases():
            results = self.search(basedn, searchfilter)
            if self.is_valid_result(results):
                self.logger.debug(
                    "directory.search_by_auth.found value=%s basedn=%s", value, basedn
                )
                return results
        self.logger.debug("directory.search_by_auth.not_found value=%s", value)
        return results

    def _search_equal(self, attribute: str, value: str) -> SearchResult:
        searchfilter = Filter.attribute(attribute).equal_to(value).to_string()
        return self.search(self.basedn, searchfilter)

    def search_by_uid(self, uid: str) -> SearchResult:
        return self._search_equal(self.config.search_username, uid)

    def search_by_email(self, email: str) -> SearchResult:
        return self._search_equal(self.config.search_user_mail, email)

    def search_by_email_array(self, email: str) -> SearchResult:
        """
        Search for ``email`` in the multi-valued mail alias attribute.
        """
        return self._search_equal(self.config.search_user_mail_array, email)

    def search_by_query(self, query: str) -> SearchResult:
        """
        Run an arbitrary, already escaped, filter against the primary base DN.
        """
        return self.search(self.basedn, query)

    def get_attribute_from_results(self, results: SearchResult, name: str) -> Any:
        """
        Return the first value of attribute ``name`` in ``results``.

        ``"dn"`` (any case) returns the distinguished name of the first record.
        Other names match case-insensitively, and the first record that has the
        attribute wins.

        Returns:
            The value, or ``None`` if no record has the attribute.

        """
        for record in results:
            if name.lower() == "dn":
                return record.dn
            if record.has(name):
                return record.get(name)
        return None

    def is_valid_result(self, results: SearchResult | None) -> bool:
        return results is not None and len(results) > 0

    # -----------------------
    # Add and modify
    # -----------------------

    def get_node(self, dn: str) -> DirectoryRecord | None:
        """
        Fetch the entry at exactly ``dn``, or ``None`` if there isn't one.
        """
        results = self.search(
            dn,
            "(objectClass=*)",
            scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
        )
        if not results:
            return None
        return results[0]

    def add_object(self, identifier: str, attributes: dict[str, AttributeValues]) -> bool:
        """
        Create a new entry in the add subtree.

        Binds with the add tier credentials first; a rejected bind raises.  If
        an entry already exists at the target DN nothing is written: updates
        go through :py:meth:`modify_object`.

        Args:
            identifier: A username (placed under the add base DN) or a full DN.
            attributes: Attribute name to a single value or a list of values.

        Raises:
            ldap.INVALID_CREDENTIALS: the add tier credentials were rejected.

        Returns:
            ``True`` if the entry was created, ``False`` if it already existed.

        """
        self._ensure_connection()
        tier = self.tiers.add
        self.bind(tier.dn, tier.password)
        dn = self.object_dn(identifier, tier.basedn)
        if self.get_node(dn) is not None:
            self.logger.warning("directory.add.exists dn=%s", dn)
            return False
        data = {key: _to_bytes(value) for key, value in attributes.items()}
        _modlist: AddModlist = modlist.addModlist(data)
        self.connection.add_s(dn, _modlist)  # type: ignore[union-attr]
        self.logger.info("directory.add.success dn=%s", dn)
        return True

    def _modify_modlist(
        self, node: DirectoryRecord, attributes: dict[str, AttributeValues]
    ) -> ModifyModlist:
        _modlist: ModifyModlist = []
        for key, value in attributes.items():
            values = _to_bytes(value)
            if node.has(key):
                if values:
                    _modlist.append((ldap.MOD_REPLACE, key, values))  # type: ignore[attr-defined]
                else:
                    _modlist.append((ldap.MOD_DELETE, key, None))  # type: ignore[attr-defined]
            elif values:
                _modlist.append((ldap.MOD_ADD, key, values))  # type: ignore[attr-defined]
        return _modlist

    def modify_object(
        self, identifier: str, attributes: dict[str, AttributeValues]
    ) -> bool:
        """
        Change attributes of an existing entry in the modify subtree.

        With the ``admin`` modify method this binds with the modify tier
        credentials first (a rejected bind raises).  With ``self`` it uses the
        identity the connection is already bound as.

        Attributes the entry already has are replaced, new ones are added, and
        an existing attribute given ``None`` or ``[]`` is removed.

        Args:
            identifier: A username (under the modify base DN) or a full DN.
            attributes: Attribute name to a single value or a list of values.

        Raises:
            ldap.INVALID_CREDENTIALS: the modify tier credentials were rejected.

        Returns:
            ``True`` if the entry exists and was updated, ``False`` if there is
            no such entry.

        """
        self._ensure_connection()
        tier = self.tiers.modify
        if self.config.modify_method is ModifyMethod.ADMIN:
            self.bind(tier.dn, tier.password)
        dn = self.object_dn(identifier, tier.basedn)
        node = self.get_node(dn)
        if node is None:
            self.logger.warning("directory.modify.no_such_object dn=%s", dn)
            return False
        _modlist = self._modify_modlist(node, attributes)
        if _modlist:
            self.connection.modify_s(dn, _modlist)  # type: ignore[union-attr]
            self.logger.info("directory.modify.success dn=%s", dn)
        else:
            self.logger.debug("directory.modify.no-changes dn=%s", dn)
        return True

    def modify_object_password(self, identifier: str, password: str) -> bool:
        """
        Set the password of an existing entry to the SSHA hash of ``password``.
        See :py:meth:`modify_object`.
        """
        return self.modify_object(
            identifier, {self.config.password_attribute: ssha(password)}
        )
