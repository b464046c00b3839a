"""Streaming decoders for model service responses."""

from .decoder import (
    CallDecoder,
    FieldDecoder,
    StreamDecoder,
    TextDecoder,
    apply_to_state,
    make_decoder,
)
from .field_extractor import FieldExtractor

__all__ = [
    "CallDecoder",
    "FieldDecoder",
    "FieldExtractor",
    "StreamDecoder",
    "TextDecoder",
    "apply_to_state",
    "make_decoder",
]
