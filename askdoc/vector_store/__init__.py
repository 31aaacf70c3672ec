"""Vector index adapters."""

from .faiss_store import FaissVectorIndex

__all__ = ["FaissVectorIndex"]
