from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError


class ReplicationError(Exception):
    """Base class for fatal setup and verification failures"""


class OwnershipConflict(ReplicationError):
    """A bucket name is already claimed by another account"""


class TransientProviderError(ReplicationError):
    """
    A storage or identity API call failed.
    Surfaced immediately; nothing in this package retries it.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

    @classmethod
    def wrap(cls, message: str, exc: Exception) -> "TransientProviderError":
        code = error_code(exc)
        detail = f"{code}: {exc}" if code else str(exc)
        return cls(f"{message}: {detail}", code=code)


class PropagationTimeout(ReplicationError):
    """An identity change did not become visible within the allowed attempts"""


class NoDestinationsError(ReplicationError):
    """The source bucket has no replication destinations to verify"""


def error_code(exc: Exception) -> Optional[str]:
    """Return the provider error code of a ClientError, or None"""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


PROVIDER_ERRORS = (ClientError, BotoCoreError)
