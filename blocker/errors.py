"""
Blocker Error Handling

All error codes and exception classes.
"""

from enum import IntEnum
from typing import Optional, Any, List


class ErrorCode(IntEnum):
    """Blocker error codes."""

    # 1xxx - General errors
    UNKNOWN_ERROR = 1000
    INVALID_PARAMETER = 1001
    INTERNAL_ERROR = 1002
    COMPOSED_ERROR = 1003

    # 2xxx - Record / store errors
    INVALID_RECORD = 2001
    RECORD_EXISTS = 2002
    STORE_ERROR = 2003
    INVALID_HASH = 2004
    INVALID_LINK = 2005

    # 3xxx - Enforcement daemon errors
    DAEMON_ERROR = 3001
    DAEMON_UNAVAILABLE = 3002
    DAEMON_REJECTED = 3003

    # 4xxx - Peer portal errors
    PEER_UNREACHABLE = 4001
    PEER_RESPONSE_INVALID = 4002

    # 5xxx - Proof-of-work errors
    INVALID_PROOF = 5001
    INVALID_PROOF_VERSION = 5002
    INVALID_IDENTITY_LENGTH = 5003
    INVALID_SIGNATURE = 5004
    INSUFFICIENT_WORK = 5005

    # 6xxx - Lifecycle errors
    BLOCKER_ALREADY_STARTED = 6001
    SYNCER_ALREADY_STARTED = 6002


class BlockerError(Exception):
    """Base exception for all blocker errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


# ==============================================================================
# General Errors (1xxx)
# ==============================================================================

class InvalidParameterError(BlockerError):
    def __init__(self, param: str, message: str = ""):
        msg = f"Invalid parameter: {param}"
        if message:
            msg += f" - {message}"
        super().__init__(ErrorCode.INVALID_PARAMETER, msg, {"parameter": param})


class InternalError(BlockerError):
    def __init__(self, message: str = "Internal error", details: Any = None):
        super().__init__(ErrorCode.INTERNAL_ERROR, message, details)


class ComposedError(BlockerError):
    """Several independent failures reported as one."""

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        super().__init__(
            ErrorCode.COMPOSED_ERROR,
            "; ".join(str(e) for e in self.errors),
            {"count": len(self.errors)}
        )


def compose_errors(*errors: Optional[BaseException]) -> Optional[BaseException]:
    """
    Combine errors, ignoring None.

    Returns:
        None if there are no errors, the error itself if there is exactly
        one, otherwise a ComposedError wrapping all of them.
    """
    errs = [e for e in errors if e is not None]
    if not errs:
        return None
    if len(errs) == 1:
        return errs[0]
    return ComposedError(errs)


# ==============================================================================
# Record / Store Errors (2xxx)
# ==============================================================================

class InvalidRecordError(BlockerError):
    def __init__(self, reason: str):
        super().__init__(
            ErrorCode.INVALID_RECORD,
            f"Invalid record: {reason}",
            {"reason": reason}
        )


class RecordExistsError(BlockerError):
    def __init__(self, hash_hex: str):
        super().__init__(
            ErrorCode.RECORD_EXISTS,
            f"Record already exists: {hash_hex}",
            {"hash": hash_hex}
        )


class StoreError(BlockerError):
    def __init__(self, operation: str, error: str):
        super().__init__(
            ErrorCode.STORE_ERROR,
            f"Store {operation} failed: {error}",
            {"operation": operation, "error": error}
        )


class InvalidHashError(BlockerError):
    def __init__(self, value: str, reason: str):
        super().__init__(
            ErrorCode.INVALID_HASH,
            f"Invalid hash {value!r}: {reason}",
            {"value": value, "reason": reason}
        )


class InvalidLinkError(BlockerError):
    def __init__(self, value: str, reason: str):
        super().__init__(
            ErrorCode.INVALID_LINK,
            f"Invalid content link {value!r}: {reason}",
            {"value": value, "reason": reason}
        )


# ==============================================================================
# Enforcement Daemon Errors (3xxx)
# ==============================================================================

class DaemonError(BlockerError):
    """Daemon answered, but not in a way attributable to the submitted content."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(
            ErrorCode.DAEMON_ERROR,
            f"Daemon error: {message}",
            {"status": status}
        )
        self.status = status


class DaemonUnavailableError(BlockerError):
    def __init__(self, url: str, error: str):
        super().__init__(
            ErrorCode.DAEMON_UNAVAILABLE,
            f"Daemon unavailable at {url}: {error}",
            {"url": url, "error": error}
        )


class DaemonRejectedError(BlockerError):
    """The daemon refused the batch because of its content."""

    def __init__(self, error: str, batch_size: int = 0):
        super().__init__(
            ErrorCode.DAEMON_REJECTED,
            f"Daemon rejected batch of {batch_size}: {error}",
            {"error": error, "batch_size": batch_size}
        )


# ==============================================================================
# Peer Errors (4xxx)
# ==============================================================================

class PeerUnreachableError(BlockerError):
    def __init__(self, url: str, error: str = ""):
        super().__init__(
            ErrorCode.PEER_UNREACHABLE,
            f"Peer unreachable: {url}" + (f" ({error})" if error else ""),
            {"url": url, "error": error}
        )


class PeerResponseError(BlockerError):
    def __init__(self, url: str, reason: str):
        super().__init__(
            ErrorCode.PEER_RESPONSE_INVALID,
            f"Invalid response from {url}: {reason}",
            {"url": url, "reason": reason}
        )


# ==============================================================================
# Proof-of-Work Errors (5xxx)
# ==============================================================================

class InvalidProofError(BlockerError):
    def __init__(self, reason: str, code: ErrorCode = ErrorCode.INVALID_PROOF):
        super().__init__(code, f"Invalid proof: {reason}", {"reason": reason})


class InvalidProofVersionError(InvalidProofError):
    def __init__(self, version: Any):
        super().__init__(
            f"unknown version {version!r}",
            ErrorCode.INVALID_PROOF_VERSION,
        )
        self.version = version


class InvalidIdentityLengthError(InvalidProofError):
    def __init__(self, length: int, expected: int):
        super().__init__(
            f"identity key is {length} bytes, expected {expected}",
            ErrorCode.INVALID_IDENTITY_LENGTH,
        )


class InvalidSignatureError(InvalidProofError):
    def __init__(self):
        super().__init__("signature verification failed", ErrorCode.INVALID_SIGNATURE)


class InsufficientWorkError(InvalidProofError):
    def __init__(self, work_hex: str, target_hex: str):
        super().__init__(
            f"work {work_hex[:16]}... does not meet target {target_hex[:16]}...",
            ErrorCode.INSUFFICIENT_WORK,
        )
        self.details = {"work": work_hex, "target": target_hex}


# ==============================================================================
# Lifecycle Errors (6xxx)
# ==============================================================================

class BlockerAlreadyStartedError(BlockerError):
    def __init__(self):
        super().__init__(ErrorCode.BLOCKER_ALREADY_STARTED, "Blocker already started")


class SyncerAlreadyStartedError(BlockerError):
    def __init__(self):
        super().__init__(ErrorCode.SYNCER_ALREADY_STARTED, "Syncer already started")
