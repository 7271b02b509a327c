"""Image pre-processing, AI extraction and multi-page merging."""

from .aggregate import AggregateOutcome, AggregationError, aggregate
from .client import (
    FAILURE_MESSAGE,
    NO_ITEMS_MESSAGE,
    STATUS_NO_ITEMS,
    STATUS_NOT_SUPPLY_LIST,
    STATUS_OK,
    STATUS_PARSE_ERROR,
    STATUS_TRANSPORT_ERROR,
    ExtractionClient,
    ExtractionOutcome,
    OpenAIVisionTransport,
    OpenRouterTransport,
    TransportError,
)
from .factory import MissingCredentialsError, build_extractor
from .interpreter import ReplyParseError, build_result, interpret_reply
from .ocr import TesseractExtractor
from .preprocess import PreparedImage, prepare_payload

__all__ = [
    "AggregateOutcome",
    "AggregationError",
    "aggregate",
    "FAILURE_MESSAGE",
    "NO_ITEMS_MESSAGE",
    "STATUS_NO_ITEMS",
    "STATUS_NOT_SUPPLY_LIST",
    "STATUS_OK",
    "STATUS_PARSE_ERROR",
    "STATUS_TRANSPORT_ERROR",
    "ExtractionClient",
    "ExtractionOutcome",
    "OpenAIVisionTransport",
    "OpenRouterTransport",
    "TransportError",
    "MissingCredentialsError",
    "build_extractor",
    "ReplyParseError",
    "build_result",
    "interpret_reply",
    "TesseractExtractor",
    "PreparedImage",
    "prepare_payload",
]
