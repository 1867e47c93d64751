"""Numeric exit codes for the ``paypal-identity`` diagnostics CLI.

Each constant maps to a failure category so that shell wrappers can tell
them apart without parsing stderr.
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""The environments file or an environment's settings are invalid."""

EXIT_AUTH_FAILURE = 3
"""The identity service rejected the credentials."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
