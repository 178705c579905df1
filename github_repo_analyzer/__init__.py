"""Fetch a GitHub repository and recover its structure for text-processing agents.

Walks the repository through the REST contents API, scans Rust and Python
sources for declared items and their relations, and exports the result as a
JSON document plus size-bounded text chunks.
"""

from .analysis import analyze
from .cli import main
from .client import RepositoryClient
from .export import chunk, to_flat_text, to_structured_document, write_report
from .models import AnalysisGraph, AnalysisReport, RepositoryRef
from .pipeline import analyze_repository
from .scanner import SourceScanner

__all__ = [
    "main",
    "analyze",
    "analyze_repository",
    "chunk",
    "to_flat_text",
    "to_structured_document",
    "write_report",
    "AnalysisGraph",
    "AnalysisReport",
    "RepositoryClient",
    "RepositoryRef",
    "SourceScanner",
]

if __name__ == "__main__":
    main()
