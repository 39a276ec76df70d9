from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .config import DirectoryConfig
from .handlers import DirectoryHandler


def get_settings() -> dict[str, Any]:
    """
    Return ``settings.DIRECTORY_AUTH``.

    Raises:
        ImproperlyConfigured: the setting does not exist or is not a dict.

    """
    try:
        data = settings.DIRECTORY_AUTH
    except AttributeError as e:
        msg = "settings.DIRECTORY_AUTH does not exist!"
        raise ImproperlyConfigured(msg) from e
    if not isinstance(data, dict):
        msg = "settings.DIRECTORY_AUTH must be a dict"
        raise ImproperlyConfigured(msg)
    return data


class HandlerFactory:
    """
    Builds :py:class:`~directory_auth.handlers.DirectoryHandler` objects from
    configuration.
    """

    @classmethod
    def get_config(cls, config: dict[str, Any] | None = None) -> DirectoryConfig:
        if config is None:
            config = get_settings()
        return DirectoryConfig.from_dict(config)

    @classmethod
    def create(cls, config: dict[str, Any] | None = None) -> DirectoryHandler:
        """
        Return a new, unconnected handler.

        Args:
            config: A ``DIRECTORY_AUTH`` style dict.  Defaults to
                ``settings.DIRECTORY_AUTH``.

        Raises:
            ImproperlyConfigured: the configuration is missing or incomplete.

        """
        return DirectoryHandler(cls.get_config(config))
