"""Wire and storage models: content envelopes and queue messages."""

from .envelope import ContentEnvelope, canonical_json, compute_content_id, object_key_for
from .messages import ContinuationMessage, DocumentMessage, QueueMessage, parse_message

__all__ = [
    "ContentEnvelope",
    "ContinuationMessage",
    "DocumentMessage",
    "QueueMessage",
    "canonical_json",
    "compute_content_id",
    "object_key_for",
    "parse_message",
]
