"""
Match a directory entry to a local Django user.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from django.contrib.auth import get_user_model

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from .handlers import DirectoryHandler
    from .results import SearchResult

logger = logging.getLogger("django-directory-auth")

#: Attributes that are not part of the configurable mapping.
FIRST_NAME_ATTRIBUTE = "givenName"
LAST_NAME_ATTRIBUTE = "sn"
DISPLAY_NAME_ATTRIBUTE = "displayName"


class IdentityReconciler:
    """
    Turn the result of
    :py:meth:`~directory_auth.handlers.DirectoryHandler.search_by_auth` into a
    local user.

    The user id attribute of the matched entry (with ``user_id_prefix`` in
    front) is looked up locally.  A local user that exists comes back with
    ``is_valid = True``.  If there is none, the result is ``None``, unless
    ``return_fake_user`` is set: then an unsaved user comes back with
    ``is_valid = False`` and the directory data in ``search_attributes`` so
    the caller can provision it.

    Args:
        handler: The handler that ran the search.

    Keyword Args:
        user_id_prefix: Prepended to the directory user id before lookup.
        return_fake_user: Return an unsaved user for directory-only identities.
        user_lookup: ``f(user_id) -> user or None``.  Defaults to a lookup on
            ``local_user_field`` of the Django user model.
        user_factory: ``f() -> user`` building the unsaved user.  Defaults to
            the Django user model.
        local_user_field: Field of the user model holding the user id.
            Defaults to the model's ``USERNAME_FIELD``.

    """

    def __init__(
        self,
        handler: "DirectoryHandler",
        user_id_prefix: str = "",
        return_fake_user: bool = False,
        user_lookup: Callable[[str], Any] | None = None,
        user_factory: Callable[[], Any] | None = None,
        local_user_field: str | None = None,
    ) -> None:
        self.handler = handler
        self.user_id_prefix = user_id_prefix or ""
        self.return_fake_user = return_fake_user
        self.local_user_field = local_user_field
        self.user_lookup = user_lookup or self.lookup_user
        self.user_factory = user_factory or get_user_model()

    def lookup_user(self, user_id: str) -> "AbstractBaseUser | None":
        user_model = get_user_model()
        field = self.local_user_field or user_model.USERNAME_FIELD
        return user_model._default_manager.filter(**{field: user_id}).first()

    def extract(self, results: "SearchResult") -> dict[str, Any]:
        """
        Pull the identity fields out of ``results``.

        Returns:
            A dict with ``uid``, ``user_id`` (prefixed), ``first_name``,
            ``last_name``, ``display_name`` and ``email``; missing attributes
            are ``None``.

        """
        config = self.handler.config
        get = self.handler.get_attribute_from_results
        user_id = get(results, config.search_user_id)
        if user_id is not None:
            user_id = f"{self.user_id_prefix}{user_id}"
        return {
            "uid": get(results, config.search_username),
            "user_id": user_id,
            "first_name": get(results, FIRST_NAME_ATTRIBUTE),
            "last_name": get(results, LAST_NAME_ATTRIBUTE),
            "display_name": get(results, DISPLAY_NAME_ATTRIBUTE),
            "email": get(results, config.search_user_mail),
        }

    def reconcile(self, results: "SearchResult") -> Any:
        """
        Return the local user for the directory entry in ``results``.

        Returns:
            The local user marked valid, a fake user marked invalid, or
            ``None``.

        """
        if not self.handler.is_valid_result(results):
            return None
        attributes = self.extract(results)
        user_id = attributes["user_id"]
        user = self.user_lookup(user_id) if user_id is not None else None
        if user is not None:
            user.is_valid = True
            logger.info("directory.reconcile.found user_id=%s", user_id)
            return user
        if not self.return_fake_user:
            logger.warning("directory.reconcile.no_local_user user_id=%s", user_id)
            return None
        user = self.user_factory()
        user.is_valid = False
        user.search_attributes = attributes
        logger.info("directory.reconcile.fake_user user_id=%s", user_id)
        return user
