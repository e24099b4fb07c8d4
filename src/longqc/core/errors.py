"""
Exception hierarchy for LongQC.
Per-read failures are isolated by the pipeline; configuration failures abort the run
before any output is written.
"""

from typing import Optional, Sequence


class LongQCError(Exception):
    """Base exception for all LongQC errors."""


class MalformedReadError(LongQCError):
    """Raised when a read's quality string is missing, length-mismatched or out of range."""

    def __init__(self, read_id: str, message: str):
        super().__init__(f"Malformed read '{read_id}': {message}")
        self.read_id = read_id
        self.reason = message


class InvalidConfigError(LongQCError):
    """Raised when a configuration value is out of its valid range."""


class InvalidWeightsError(InvalidConfigError):
    """Raised when the score weights are negative or all zero."""


class ReferenceUnavailableError(LongQCError):
    """Raised when a configured reference file or aligner cannot be used."""


class AlignerError(LongQCError):
    """Raised when the external aligner exits with an error."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None,
                 returncode: Optional[int] = None, stderr: Optional[str] = None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ReadSourceError(LongQCError):
    """Raised when a read file cannot be opened or its record structure is broken."""
