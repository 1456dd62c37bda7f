"""
Standard exit codes and error taxonomy for imagebump.

Following Unix/POSIX conventions for command-line tools. Each failure
class gets its own code so a calling pipeline can branch on it.
"""
import json
import re
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination (including no-op updates)
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
NOT_FOUND = 64           # Manifest (or registry tag) does not exist
PARSE_ERROR = 65         # Manifest is not valid YAML or has a malformed image field
IO_ERROR = 66            # Write, rename or local git failure
PERMISSION_ERROR = 67    # Insufficient permissions
NETWORK_ERROR = 68       # Network connection failed
AUTH_ERROR = 69          # Authentication/authorization failed
CONFLICT_ERROR = 70      # Push rejected after exhausting retries
CONFIG_ERROR = 71        # Configuration file error
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for exceptions raised outside the taxonomy
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': NOT_FOUND,
    'PermissionError': PERMISSION_ERROR,
    'IsADirectoryError': IO_ERROR,
    'OSError': IO_ERROR,
    'ConnectionError': NETWORK_ERROR,
    'TimeoutError': NETWORK_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    if isinstance(exc, UpdaterError):
        return exc.exit_code
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


def _field_value(value: str) -> str:
    # Bare when it cannot be confused with a field separator, JSON-quoted otherwise
    if value and not re.search(r'[\s"\\=]', value):
        return value
    return json.dumps(value, ensure_ascii=False)


class UpdaterError(Exception):
    """
    Base exception for all updater failures.

    Carries the exit code and enough context (path, repository, tag,
    underlying cause) to diagnose a failure without re-running.
    """
    kind = "error"
    exit_code = GENERAL_ERROR

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        repository: Optional[str] = None,
        tag: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.repository = repository
        self.tag = tag
        self.cause = cause

    def with_context(self, repository: Optional[str] = None, tag: Optional[str] = None):
        """Fill in request context not known where the error was raised."""
        if self.repository is None:
            self.repository = repository
        if self.tag is None:
            self.tag = tag
        return self

    def to_dict(self):
        result = {
            'error': self.kind,
            'code': self.exit_code,
            'message': self.message,
        }
        if self.path:
            result['path'] = str(self.path)
        if self.repository:
            result['repository'] = self.repository
        if self.tag:
            result['tag'] = self.tag
        if self.cause is not None:
            result['cause'] = str(self.cause)
        return result

    def to_line(self) -> str:
        """Single-line, machine-parseable form of the error."""
        parts = [f"error={self.kind}", f"code={self.exit_code}"]
        for key in ('path', 'repository', 'tag'):
            value = getattr(self, key)
            if value:
                parts.append(f"{key}={_field_value(str(value))}")
        # Always quoted; newlines and quotes inside are escaped
        parts.append(f"message={json.dumps(self.message, ensure_ascii=False)}")
        return " ".join(parts)


class InvalidRequestError(UpdaterError):
    """Raised when the update request fails its preconditions."""
    kind = "usage"
    exit_code = USAGE_ERROR


class NotFoundError(UpdaterError):
    """Raised when a manifest path (or a registry tag) does not exist."""
    kind = "not_found"
    exit_code = NOT_FOUND


class ParseError(UpdaterError):
    """Raised when a manifest is not valid YAML or has a malformed image field."""
    kind = "parse"
    exit_code = PARSE_ERROR


class ManifestPermissionError(UpdaterError):
    """Raised when a manifest cannot be read."""
    kind = "permission"
    exit_code = PERMISSION_ERROR


class ManifestIOError(UpdaterError):
    """Raised when writing a manifest or running a local git step fails."""
    kind = "io"
    exit_code = IO_ERROR


class AuthError(UpdaterError):
    """Raised when the remote rejects our credentials."""
    kind = "auth"
    exit_code = AUTH_ERROR


class NetworkError(UpdaterError):
    """Raised on transport failure. Retryable."""
    kind = "network"
    exit_code = NETWORK_ERROR


class ConflictError(UpdaterError):
    """Raised when concurrent pushes keep winning and retries are exhausted."""
    kind = "conflict"
    exit_code = CONFLICT_ERROR

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ConfigError(UpdaterError):
    """Raised when there's a configuration error."""
    kind = "config"
    exit_code = CONFIG_ERROR
