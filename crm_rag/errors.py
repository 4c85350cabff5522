"""
Exception hierarchy for the retrieval and query core.

Only genuine failures are exceptions.  An empty corpus or an over-broad
record match are ordinary return values (see ContextResult and
ClarificationRequest).
"""
from __future__ import annotations


class CRMRagError(Exception):
    """Base class for every error raised by crm_rag."""


class EmbeddingServiceError(CRMRagError):
    """The external embedding call failed (network, quota, malformed input)."""


class EmbeddingTimeoutError(EmbeddingServiceError):
    """The embedding call did not complete within the configured timeout."""


class DimensionMismatchError(CRMRagError, ValueError):
    """Two vectors that must share a dimensionality do not."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimension mismatch: {left} != {right}")
        self.left = left
        self.right = right


class StoreError(CRMRagError):
    """A document or record store read/write failed."""


class ConfigError(CRMRagError):
    """The configuration file is missing or invalid."""
