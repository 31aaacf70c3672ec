"""Command-line entry point: ingest a document and answer questions about it."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from askdoc.config import config
from askdoc.service import DocumentQAService, build_service

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from logging import Logger

EXIT_COMMANDS = frozenset({"exit", "quit", ":q"})


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Ask questions about a PDF or text document.",
    )
    parser.add_argument(
        "document",
        type=Path,
        help="Path to the .pdf or .txt document to ingest.",
    )
    parser.add_argument(
        "-q",
        "--question",
        dest="questions",
        action="append",
        default=[],
        help="Question to answer (repeatable). Reads stdin when omitted.",
    )
    parser.add_argument(
        "--session-only",
        action="store_true",
        help="Ingest the document, print the session status and exit.",
    )
    return parser.parse_args(argv)


async def ask(service: DocumentQAService, session_id: str, question: str) -> int:
    """Answer one question and print the response."""  # noqa: DOC201
    response = await service.query(question, session_id)
    print(response.response)  # noqa: T201
    if response.strategy:
        print(f"[search: {response.strategy}]")  # noqa: T201
    return 0 if response.status_code < 400 else 1  # noqa: PLR2004


async def run(
    args: argparse.Namespace,
    logger: Logger,
    read_line: Callable[[str], str] = input,
) -> int:
    """Ingest the document, then answer questions until input runs out."""  # noqa: DOC201
    try:
        data = args.document.read_bytes()
    except OSError:
        logger.exception("Unable to read document: %s", args.document)
        return 1

    service = build_service()
    upload = await service.upload(data, args.document.name)
    if not upload.agent_ready or upload.session_id is None:
        logger.error("Ingestion failed (%s): %s", upload.error_type, upload.error)
        return 1

    logger.info(
        "Document ready: %s chunks, %s indexed, status %s",
        upload.chunk_count,
        upload.indexed_chunk_count,
        upload.index_status,
    )
    if upload.warning:
        logger.warning(upload.warning)

    if args.session_only:
        health = await service.health(upload.session_id)
        print(health.session)  # noqa: T201
        return 0

    if args.questions:
        codes = [
            await ask(service, upload.session_id, question)
            for question in args.questions
        ]
        return max(codes, default=0)

    while True:
        try:
            question = read_line("Question> ").strip()
        except EOFError:
            return 0
        if question.lower() in EXIT_COMMANDS:
            return 0
        if question:
            await ask(service, upload.session_id, question)


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and run the question-answering session."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    try:
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        logger.info("askdoc stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
