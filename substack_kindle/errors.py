"""Exceptions raised by the pipeline stages."""

from __future__ import annotations


class SubstackKindleError(Exception):
    """Base class for every fatal error of a run."""


class InputError(SubstackKindleError):
    """Bad URL, missing or invalid file, bad configuration value."""


class UnsupportedFormatError(InputError):
    """Requested output format is not one of epub, azw3 or mobi."""


class AcquisitionError(SubstackKindleError):
    """The article could not be fetched or parsed."""


class ConversionError(SubstackKindleError):
    """The e-book could not be produced."""


class ConverterToolError(ConversionError):
    """The external converter exited unsuccessfully."""

    def __init__(self, command: str, returncode: int, output: str) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"{command} exited with status {returncode}: {output.strip()[-2000:]}"
        )


class DeliveryError(SubstackKindleError):
    """The message could not be handed to the mail relay."""
