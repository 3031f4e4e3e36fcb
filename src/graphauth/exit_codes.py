"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~graphauth.exceptions.GraphAuthError` subclass, so
shell wrappers can tell an auth failure from an API failure without parsing
stderr.

Example::

    $ graphauth request GET me
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- no token could be acquired
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Token acquisition failed or no connection is active."""

EXIT_REQUEST_FAILURE = 5
"""The target API rejected a write request."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
