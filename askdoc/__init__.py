"""askdoc - retrieval-augmented question answering over uploaded documents."""

from .document_processing import DocumentLoader, TextChunker, select_processing_profile
from .embeddings import OpenAIProvider, ProviderHandle
from .errors import ErrorType, PipelineError, ProviderInitError
from .generation import AnswerGenerator
from .models import DocumentChunk, Err, IndexStatus, Ok, SearchResult, SearchStrategy
from .pipeline import IngestionPipeline, IngestionReport
from .search import NO_RESULTS_SENTINEL, SearchService
from .service import DocumentQAService, build_service
from .session_store import SessionStore
from .vector_store import FaissVectorIndex

__all__ = [
    "NO_RESULTS_SENTINEL",
    "AnswerGenerator",
    "DocumentChunk",
    "DocumentLoader",
    "DocumentQAService",
    "Err",
    "ErrorType",
    "FaissVectorIndex",
    "IndexStatus",
    "IngestionPipeline",
    "IngestionReport",
    "Ok",
    "OpenAIProvider",
    "PipelineError",
    "ProviderHandle",
    "ProviderInitError",
    "SearchResult",
    "SearchService",
    "SearchStrategy",
    "SessionStore",
    "TextChunker",
    "build_service",
    "select_processing_profile",
]
