"""Text extraction from uploaded documents and text chunking."""

import asyncio
import datetime
import io
from dataclasses import dataclass
from pathlib import PurePath

import pypdf

from .config import config
from .errors import ErrorType, PipelineError
from .models import DocumentChunk

logger = config.get_logger(__name__)

# Boundary preference, most to least coherent: paragraph, line, sentence, word.
DEFAULT_SEPARATOR_LEVELS: tuple[tuple[str, ...], ...] = (
    ("\n\n",),
    ("\n",),
    (". ", "? ", "! "),
    (" ",),
)


class DocumentLoader:
    """Turns raw uploaded bytes into plain text."""

    @staticmethod
    def load_pdf(data: bytes) -> str:
        """Extract text from a PDF buffer.

        Returns:
            Text of every page, pages separated by a blank line.

        Raises:
            PipelineError: If the PDF cannot be parsed.
        """
        try:
            pdf_reader = pypdf.PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in pdf_reader.pages]
        except Exception as exc:
            logger.exception("Error parsing PDF buffer")
            msg = f"Failed to extract text from PDF: {exc}"
            raise PipelineError(ErrorType.TEXT_EXTRACTION_ERROR, msg) from exc
        logger.info("Extracted text from %d PDF pages", len(pages))
        return "\n\n".join(page.strip() for page in pages)

    @staticmethod
    def load_txt(data: bytes) -> str:
        """Decode a UTF-8 text buffer, replacing undecodable bytes.

        Returns:
            The decoded text.
        """
        return data.decode("utf-8-sig", errors="replace")

    @classmethod
    def extract_text(cls, data: bytes, filename: str) -> str:
        """Extract text from a document buffer based on its file extension.

        Args:
            data: Raw document bytes.
            filename: Original file name; its extension selects the parser.

        Returns:
            The stripped text content of the document.

        Raises:
            ValueError: If the file type is not supported.
            PipelineError: If no text can be extracted.
        """
        file_ext = PurePath(filename).suffix.lower()
        if file_ext == ".pdf":
            text = cls.load_pdf(data)
        elif file_ext == ".txt":
            text = cls.load_txt(data)
        else:
            msg = f"Unsupported file type: {file_ext}"
            raise ValueError(msg)

        text = text.strip()
        if not text:
            msg = "Document appears to be empty or contains only images"
            raise PipelineError(ErrorType.TEXT_EXTRACTION_ERROR, msg)

        logger.info("Extracted %d characters from %s", len(text), filename)
        return text

    @classmethod
    async def extract_text_async(cls, data: bytes, filename: str) -> str:
        """Run extract_text in a worker thread so the event loop stays free."""  # noqa: DOC201
        return await asyncio.to_thread(cls.extract_text, data, filename)


class TextChunker:
    """Splits text into overlapping chunks cut at the most coherent boundary.

    Each window is at most ``chunk_size`` characters. The window end is moved
    back to the last paragraph break inside it, failing that the last line
    break, sentence end, or space, provided the cut keeps more than half the
    window and more than ``overlap`` characters. The next window starts
    exactly ``overlap`` characters before the previous end, so consecutive
    windows share ``overlap`` characters of source text. Overlap is counted in
    source offsets (``start_char``/``end_char``); chunk content is stripped, so
    whitespace at a window edge is not repeated in ``content``.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        separator_levels: tuple[tuple[str, ...], ...] = DEFAULT_SEPARATOR_LEVELS,
    ) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: The maximum size of each text chunk.
            overlap: The number of overlapping characters between chunks.
            separator_levels: Boundary candidates grouped by preference.

        Raises:
            ValueError: If the sizes are not positive or overlap >= chunk_size.
        """
        if chunk_size <= 0 or overlap < 0:
            msg = "chunk_size must be positive and overlap non-negative"
            raise ValueError(msg)
        if overlap >= chunk_size:
            msg = "overlap must be smaller than chunk_size"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.separator_levels = separator_levels

    def _find_cut(self, text: str, start: int, limit: int) -> int:
        """Pick the end offset for the window text[start:limit]."""  # noqa: DOC201
        floor = start + max(self.chunk_size // 2, self.overlap)
        for separators in self.separator_levels:
            best = -1
            for separator in separators:
                pos = text.rfind(separator, floor, limit)
                if pos != -1:
                    best = max(best, pos + len(separator))
            if best > floor and best <= limit:
                return best
        return limit

    def chunk_text(
        self,
        text: str,
        source: str = "document",
        uploaded_at: str | None = None,
    ) -> list[DocumentChunk]:
        """Split text into overlapping chunks.

        Returns:
            A list of DocumentChunk objects in document order.
        """
        if uploaded_at is None:
            uploaded_at = datetime.datetime.now(tz=datetime.UTC).isoformat()

        chunks: list[DocumentChunk] = []
        text_length = len(text)
        start = 0

        while start < text_length:
            limit = start + self.chunk_size
            end = text_length if limit >= text_length else self._find_cut(
                text, start, limit
            )

            content = text[start:end].strip()
            if content:  # Only add non-empty chunks
                chunks.append(
                    DocumentChunk(
                        content=content,
                        metadata={
                            "source": source,
                            "chunk_id": len(chunks),
                            "start_char": start,
                            "end_char": end,
                            "length": len(content),
                            "uploaded_at": uploaded_at,
                        },
                    )
                )

            if end >= text_length:
                break
            start = max(end - self.overlap, start + 1)

        logger.info("Text split into %d chunks", len(chunks))
        return chunks


@dataclass(frozen=True)
class ProcessingProfile:
    """Chunking and indexing parameters for one document size tier."""

    name: str
    chunk_size: int
    chunk_overlap: int
    batch_size: int
    index_timeout: float


def select_processing_profile(text_length: int) -> ProcessingProfile:
    """Choose chunk/batch sizes by the length of the extracted text.

    Larger documents get larger chunks and batches; this trades retrieval
    granularity for ingestion throughput.

    Returns:
        The profile for the small, medium or large tier.
    """
    if text_length < config.SMALL_DOC_THRESHOLD:
        return ProcessingProfile(
            name="small",
            chunk_size=config.SMALL_DOC_CHUNK_SIZE,
            chunk_overlap=config.SMALL_DOC_CHUNK_OVERLAP,
            batch_size=config.SMALL_DOC_BATCH_SIZE,
            index_timeout=config.SMALL_DOC_INDEX_TIMEOUT,
        )
    if text_length < config.MEDIUM_DOC_THRESHOLD:
        return ProcessingProfile(
            name="medium",
            chunk_size=config.MEDIUM_DOC_CHUNK_SIZE,
            chunk_overlap=config.MEDIUM_DOC_CHUNK_OVERLAP,
            batch_size=config.MEDIUM_DOC_BATCH_SIZE,
            index_timeout=config.MEDIUM_DOC_INDEX_TIMEOUT,
        )
    return ProcessingProfile(
        name="large",
        chunk_size=config.LARGE_DOC_CHUNK_SIZE,
        chunk_overlap=config.LARGE_DOC_CHUNK_OVERLAP,
        batch_size=config.LARGE_DOC_BATCH_SIZE,
        index_timeout=config.LARGE_DOC_INDEX_TIMEOUT,
    )
