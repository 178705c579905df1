"""End-to-end analysis of one repository: resolve, scan, analyze, export."""

import logging
import threading

from .analysis import analyze
from .client import RepositoryClient
from .errors import FetchFailed
from .export import chunk, to_flat_text, to_structured_document
from .models import AnalysisReport, RepositoryRef
from .scanner import SourceScanner
from .settings import Settings, get_settings
from .utils import parse_repository

logger = logging.getLogger(__name__)


def analyze_repository(
    repository: str | RepositoryRef,
    settings: Settings | None = None,
    cancel: threading.Event | None = None,
    root_path: str = "",
    ref: str | None = None,
) -> AnalysisReport:
    """Fetch and analyze a repository.

    Per-path fetch failures end up as warnings in the report. Invalid
    references, failures to reach the repository itself and cancellation
    are raised.
    """
    settings = settings or get_settings()
    if not isinstance(repository, RepositoryRef):
        repository = parse_repository(repository, ref)
    elif ref is not None:
        repository = repository.with_ref(ref)

    with RepositoryClient.from_settings(repository, settings, cancel=cancel) as client:
        client.resolve_ref()
        logger.info("Analyzing %s", client.repository)
        scanner = SourceScanner.from_settings(client, settings, cancel=cancel)
        files = list(scanner.collect(root_path))
        root = root_path.strip("/") or "/"
        if not files and any(w.path == root and w.kind == "fetch" for w in scanner.warnings):
            raise FetchFailed(root_path, message=f"Cannot list {root} of {client.repository}")
        graph = analyze(
            files,
            ref=client.repository,
            warnings=scanner.warnings,
            structure=scanner.structure,
        )

    document = to_structured_document(graph)
    flat_text = to_flat_text(document)
    chunks = chunk(flat_text, settings.chunk_max_bytes)
    logger.info("Exported %d bytes of text in %d chunks", len(flat_text.encode("utf-8")), len(chunks))
    return AnalysisReport(graph=graph, document=document, flat_text=flat_text, chunks=chunks)
