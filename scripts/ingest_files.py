#!/usr/bin/env python3
"""Ingest local files into the configured index and optionally ask a question."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from docqa.config import get_settings
from docqa.errors import DocQAError, QueryFailed
from docqa.ingest import SourceDocument, guess_mime_type
from docqa.logging_config import configure_logging
from docqa.models import IngestionState
from docqa.services.rag import RAGService


def _load_dotenv() -> None:
    env_file = Path(__file__).resolve().parents[1] / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=env_file)
    else:
        load_dotenv()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", nargs="+", type=Path, help="Files to ingest")
    parser.add_argument("--mime-type", help="Override the mime type guessed from each file name")
    parser.add_argument("--ask", metavar="QUESTION", help="Question to answer once ingestion finishes")
    parser.add_argument("--session", default="cli", help="Session id used for --ask (default: cli)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    _load_dotenv()
    args = _parse_args(argv)

    try:
        settings = get_settings()
    except DocQAError as error:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level, settings.log_dir)

    items = []
    for path in args.paths:
        if not path.is_file():
            logging.error("Not a file: %s", path)
            return 2
        items.append(
            SourceDocument(
                document_id=str(path),
                mime_type=args.mime_type or guess_mime_type(path.name),
                raw_bytes=path.read_bytes(),
                metadata={"file_name": path.name},
            )
        )

    service = RAGService(settings)
    try:
        reports = service.ingest_many(items)
        print(json.dumps([report.as_dict() for report in reports], indent=2, ensure_ascii=False))
        failed = [report for report in reports if report.state is IngestionState.FAILED]

        if args.ask:
            try:
                response = service.answer(args.ask, args.session)
            except QueryFailed as error:
                print(error.user_message, file=sys.stderr)
                return 1
            print(json.dumps({"answer": response.answer, "sources": response.sources}, indent=2, ensure_ascii=False))
    finally:
        service.close()

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
