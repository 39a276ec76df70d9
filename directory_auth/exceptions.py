class NotConnected(RuntimeError):
    """
    Raised when a directory operation needs a transport connection and
    :py:meth:`~directory_auth.handlers.DirectoryHandler.connect` (or
    :py:meth:`~directory_auth.handlers.DirectoryHandler.connect_by_dn`) has not
    been called yet.
    """
