"""Domain-specific errors for ploadctl."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    BAD_ARGS = 1
    OPERATION_FAILED = 2
    BOOTLOADER_NOT_FOUND = 3


class PloadError(Exception):
    """Base error for ploadctl."""

    exit_code = ExitCode.OPERATION_FAILED


class BadArguments(PloadError):
    """Raised when the command line is malformed or incomplete."""

    exit_code = ExitCode.BAD_ARGS


class BootloaderNotFound(PloadError):
    """Raised when no bootloader matches the current serial number filter.

    ``informational`` marks the not-found condition reported by ``--list``,
    which is printed as a plain message rather than as an error.
    """

    exit_code = ExitCode.BOOTLOADER_NOT_FOUND

    def __init__(self, message: str, *, informational: bool = False) -> None:
        super().__init__(message)
        self.informational = informational


class OperationFailed(PloadError):
    """Base for every failure that is not bad input or a missing device."""

    exit_code = ExitCode.OPERATION_FAILED


class DeviceDiscoveryError(OperationFailed):
    """Raised when USB enumeration fails."""


class DeviceSelectionError(OperationFailed):
    """Raised when more than one bootloader qualifies for selection."""


class BootloaderTypeValidationError(OperationFailed):
    """Raised when a bootloader type file does not conform to schema or semantics."""


class BootloaderTypeLoadError(OperationFailed):
    """Raised when reading bootloader type sources fails."""


class HexFileError(OperationFailed):
    """Raised when a HEX file cannot be read, parsed, or written."""


class TransportError(OperationFailed):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when a bootloader cannot be opened."""


class TransportIOError(TransportError):
    """Raised when a control transfer to the bootloader fails."""
