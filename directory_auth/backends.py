import logging
from typing import Any

from django.contrib.auth.backends import ModelBackend
from django.http import HttpRequest

from .factories import HandlerFactory
from .handlers import DirectoryHandler
from .reconcilers import IdentityReconciler

logger = logging.getLogger("django-directory-auth")


class DirectoryBackend(ModelBackend):
    """
    Authenticate against the directory in ``settings.DIRECTORY_AUTH`` and
    return the matching local user.

    Every failure (bad password, no such directory entry, no local user)
    returns ``None``, so the login form shows one generic "invalid username
    or password" error.  With ``return_fake_user`` enabled, a directory user
    with no local account comes back as an unsaved user with
    ``is_valid = False``; callers that can provision accounts should check
    that flag before calling :py:func:`django.contrib.auth.login`.

    ``get_user`` and the permission methods come from
    :py:class:`~django.contrib.auth.backends.ModelBackend`.
    """

    def get_handler(self) -> DirectoryHandler:
        return HandlerFactory.create()

    def get_reconciler(self, handler: DirectoryHandler) -> IdentityReconciler:
        extra = handler.config.extra
        return IdentityReconciler(
            handler,
            user_id_prefix=extra.get("user_id_prefix", ""),
            return_fake_user=bool(extra.get("return_fake_user", False)),
            local_user_field=extra.get("local_user_field"),
        )

    def authenticate(
        self,
        request: HttpRequest | None,
        username: str | None = None,
        password: str | None = None,
        **kwargs: Any,
    ) -> Any:
        if not username:
            return None
        username = username.strip()
        handler = self.get_handler()
        if not password and not handler.can_allow_no_pass():
            logger.debug("auth.empty_password user=%s", username)
            return None
        try:
            if not handler.connect(username, password or ""):
                return None
            results = handler.search_by_auth(username)
            if not handler.is_valid_result(results):
                logger.warning("auth.no_such_user user=%s", username)
                return None
            user = self.get_reconciler(handler).reconcile(results)
        finally:
            handler.disconnect()
        if user is None:
            return None
        if user.is_valid and not self.user_can_authenticate(user):
            logger.warning("auth.inactive user=%s", username)
            return None
        logger.info("auth.success user=%s valid=%s", username, user.is_valid)
        return user
