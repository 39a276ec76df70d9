"""
Let a logged in user act as another user and switch back later.

The identifier of the user who started the masquerade is kept in a
:py:class:`MasqueradeContext`, normally the Django session.  While it is set,
the session is masquerading; clearing it ends the masquerade.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, MutableMapping
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model, login

logger = logging.getLogger("django-directory-auth")

#: Session key holding the original user's identifier.
SESSION_KEY = "masquerading_user"


class MasqueradeContext(ABC):
    """
    Storage for the "original user" slot of one session.
    """

    @abstractmethod
    def get(self) -> Any: ...

    @abstractmethod
    def set(self, identifier: Any) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


def user_identifier(user: Any) -> Any:
    """
    Return a session-safe identifier for ``user``: the primary key as a
    string for model instances (the way :py:func:`django.contrib.auth.login`
    stores it), the raw ``pk`` otherwise.  Users without a primary key, such
    as :py:class:`~django.contrib.auth.models.AnonymousUser` or unsaved
    users, have no identifier (``None``).
    """
    pk = getattr(user, "pk", None)
    if pk is None:
        return None
    meta = getattr(user, "_meta", None)
    if meta is not None and meta.pk is not None:
        return meta.pk.value_to_string(user)
    return pk


class SessionMasqueradeContext(MasqueradeContext):
    """
    Keep the original user's identifier in a session (or any mutable mapping).

    Args:
        session: ``request.session``.

    Keyword Args:
        key: The session key to use.

    """

    def __init__(self, session: MutableMapping[str, Any], key: str = SESSION_KEY) -> None:
        self.session = session
        self.key = key

    def get(self) -> Any:
        return self.session.get(self.key)

    def set(self, identifier: Any) -> None:
        self.session[self.key] = identifier

    def clear(self) -> None:
        self.session.pop(self.key, None)


class MasqueradeManager:
    """
    Switch the effective user of a session and back.

    Args:
        context: Where the original user's identifier is kept.
        principal: The current effective user.
        resolve: ``f(identifier) -> user or None``.

    Keyword Args:
        switch: Called with the new effective user whenever it changes (for
            example to log it in).
        get_identifier: ``f(user) -> identifier``.  Defaults to
            :py:func:`user_identifier`.

    """

    def __init__(
        self,
        context: MasqueradeContext,
        principal: Any,
        resolve: Callable[[Any], Any],
        switch: Callable[[Any], None] | None = None,
        get_identifier: Callable[[Any], Any] | None = None,
    ) -> None:
        self.context = context
        self.principal = principal
        self.resolve = resolve
        self.switch = switch
        self.get_identifier = get_identifier or user_identifier

    def _become(self, user: Any) -> None:
        if self.switch is not None:
            self.switch(user)
        self.principal = user

    def is_masquerading(self) -> bool:
        return self.context.get() is not None

    def get_masquerading_user(self) -> Any:
        """
        Return the user who started the masquerade, or ``None`` if the session
        is not masquerading.
        """
        identifier = self.context.get()
        if identifier is None:
            return None
        return self.resolve(identifier)

    def masquerade_as_user(self, target: Any) -> bool:
        """
        Become ``target``, remembering the current user.

        Masquerades do not nest: starting one while another is active does
        nothing.  Neither does starting one from a user with no identifier
        (an anonymous or unsaved user), since there would be no way back.

        Returns:
            ``True`` if the switch happened, ``False`` otherwise.

        """
        if self.is_masquerading():
            logger.warning(
                "masquerade.start.already_masquerading user=%s target=%s",
                self.get_identifier(self.principal),
                self.get_identifier(target),
            )
            return False
        original = self.get_identifier(self.principal)
        if original is None:
            logger.warning(
                "masquerade.start.no_identifier target=%s", self.get_identifier(target)
            )
            return False
        # switch first: logging in as someone else may flush the session
        self._become(target)
        self.context.set(original)
        logger.info(
            "masquerade.start user=%s target=%s", original, self.get_identifier(target)
        )
        return True

    def stop_masquerading(self) -> bool:
        """
        Switch back to the user who started the masquerade.

        Returns:
            ``True`` if the original user was restored, ``False`` if the
            session was not masquerading or the original user no longer
            exists (the masquerade state is cleared either way).

        """
        if not self.is_masquerading():
            return False
        original = self.get_masquerading_user()
        if original is None:
            logger.warning(
                "masquerade.stop.no_such_user identifier=%s", self.context.get()
            )
            self.context.clear()
            return False
        masked = self.get_identifier(self.principal)
        self._become(original)
        self.context.clear()
        logger.info(
            "masquerade.stop user=%s target=%s", self.get_identifier(original), masked
        )
        return True


def for_request(request: Any) -> MasqueradeManager:
    """
    Build a :py:class:`MasqueradeManager` for a Django request: state in
    ``request.session``, users from the user model, switches done with
    :py:func:`django.contrib.auth.login`.
    """
    user_model = get_user_model()

    def resolve(identifier: Any) -> Any:
        return user_model._default_manager.filter(pk=identifier).first()

    def switch(user: Any) -> None:
        login(request, user, backend=getattr(user, "backend", None) or _default_backend())

    return MasqueradeManager(
        SessionMasqueradeContext(request.session),
        request.user,
        resolve,
        switch=switch,
    )


def _default_backend() -> str:
    backends = getattr(settings, "AUTHENTICATION_BACKENDS", None) or [
        "django.contrib.auth.backends.ModelBackend"
    ]
    return backends[0]
