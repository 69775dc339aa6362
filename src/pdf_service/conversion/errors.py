class ServiceError(Exception):
    """Base exception for all conversion service errors."""


class InvalidInputError(ServiceError):
    """Raised when an upload is rejected before any job is created."""


class UnsupportedFileTypeError(InvalidInputError):
    """Raised when an upload is not a PowerPoint or Word document."""


class UploadTooLargeError(InvalidInputError):
    """Raised when an upload exceeds the configured size limit."""


class JobNotFoundError(ServiceError):
    """Raised when a job id is unknown or its output file is missing."""


class InvalidTransitionError(ServiceError):
    """Raised when a job in a terminal state is asked to change status."""


class JobCancelledError(ServiceError):
    """Raised when a job was cancelled while its conversion was running."""


class ConversionError(ServiceError):
    """Raised when the external conversion tool fails to produce a PDF."""


class InputNotFoundError(ConversionError):
    """Raised when the document to convert does not exist."""


class ToolNotInstalledError(ConversionError):
    """Raised when the conversion binary is missing from the environment."""


class ConversionTimeoutError(ConversionError):
    """Raised when the conversion tool exceeds its time budget."""


class OutputNotProducedError(ConversionError):
    """Raised when the tool exits without writing the expected PDF."""


class OutputMoveFailedError(ConversionError):
    """Raised when the PDF cannot be moved to its final location."""


class ArchiveError(ServiceError):
    """Raised when a ZIP archive cannot be built."""
