"""Exceptions raised by the TFIAC client stack."""


class TfiacApiClientError(Exception):
    """Exception to indicate a general API error."""


class TfiacApiClientCommunicationError(TfiacApiClientError):
    """Socket failure or timeout; safe to retry."""


class TfiacProtocolError(TfiacApiClientError):
    """Malformed or unparseable device message; never retried."""
