class OracleError(Exception):
    """Base error for the wallet oracle."""


class ChainError(OracleError):
    """RPC unreachable, timed out, or returned an unusable response."""

    def __init__(self, message: str, method: str | None = None):
        super().__init__(message)
        self.method = method


class LLMError(OracleError):
    """The completion provider failed, timed out, or returned nothing."""
