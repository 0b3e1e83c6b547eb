class ConversionFailure(Exception):
    """Base exception for every way a conversion request can fail.

    ``message`` is returned to the client and must stay generic. ``detail``
    is for the log only and may carry paths, stderr output and the like.
    """

    code = "conversion_failure"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, detail: str | None = None, *, message: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail or self.message
        super().__init__(self.detail)


class ValidationFailure(ConversionFailure):
    """Client-side fault. Raised before any artifact exists."""

    status_code = 400


class MissingFile(ValidationFailure):
    code = "missing_file"
    default_message = "No file uploaded"


class UnsupportedType(ValidationFailure):
    code = "unsupported_type"
    default_message = "Unsupported file type"


class PayloadTooLarge(ValidationFailure):
    code = "payload_too_large"
    default_message = "File too large"


class StorageError(ConversionFailure):
    code = "storage_error"
    default_message = "Could not store upload"


class ConversionError(ConversionFailure):
    code = "conversion_error"
    default_message = "Error converting file"


class ConversionTimeout(ConversionError):
    code = "conversion_timeout"
    default_message = "Conversion timed out"


class EmptyContent(ConversionError):
    code = "empty_content"
    default_message = "Document has no content to convert"


class OutputMissing(ConversionError):
    code = "output_missing"
    default_message = "Conversion produced no output"


class DeliveryError(ConversionFailure):
    code = "delivery_error"
    default_message = "Error delivering file"
