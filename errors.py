"""
Exception types raised by the certificate tool.

Every error carries the exit status the command line should terminate with.
"""

from contextlib import contextmanager

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm


class CertToolError(Exception):
    """Base class for all failures that end a run."""

    exit_code = 1

    def __init__(self, message, detail=None, exit_code=None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if exit_code is not None:
            self.exit_code = exit_code


class PrerequisiteError(CertToolError):
    """Missing toolkit, unwritable directory or unusable configuration."""


class UserInputError(CertToolError):
    """A required interactive value was empty or unusable."""


class CryptoOperationError(CertToolError):
    """Key, CSR, certificate or bundle generation failed."""

    def __init__(self, stage, detail=None, exit_code=None):
        super().__init__(f"Failed to {stage}.", detail=detail, exit_code=exit_code)
        self.stage = stage


class FileSystemError(CertToolError):
    """Directory or file could not be created, or already exists."""


@contextmanager
def crypto_stage(stage):
    """Turn toolkit failures inside the block into a CryptoOperationError for stage."""
    try:
        yield
    except CertToolError:
        raise
    except (ValueError, TypeError, UnsupportedAlgorithm, InvalidSignature) as e:
        raise CryptoOperationError(stage, detail=f"{type(e).__name__}: {e}") from e
