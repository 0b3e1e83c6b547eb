"""
Domain layer for Word to PDF conversion.
Provides interfaces (gateways), the request data model, validation and a
service orchestrating one conversion request from upload to cleanup, so
front-ends (HTTP or others) can use the same core logic.
"""

from .errors import (
    ConversionError,
    ConversionFailure,
    ConversionTimeout,
    DeliveryError,
    EmptyContent,
    MissingFile,
    OutputMissing,
    PayloadTooLarge,
    StorageError,
    UnsupportedType,
    ValidationFailure,
)
from .interfaces import ConverterGateway, StorageGateway
from .models import ArtifactRole, ConversionRequest, Stage, TemporaryArtifact, ValidationPolicy
from .service import ConversionService
