"""Walk a repository through the client and yield the files worth analyzing."""

import itertools
import logging
import posixpath
import threading
from collections import Counter, deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterator

from .client import RepositoryClient
from .errors import Cancelled, FetchFailed
from .models import AnalysisWarning, DirectoryEntry, FetchedFile, RepositoryStructure
from .settings import DEFAULT_EXCLUSION_PATTERNS, Settings, get_settings
from .utils import path_parts

logger = logging.getLogger(__name__)

# Languages the analysis engine has a parser for
LANGUAGE_BY_SUFFIX = {
    ".rs": "rust",
    ".py": "python",
    ".pyi": "python",
}

# Used only for the repository structure summary
_LANGUAGE_NAMES = {
    ".rs": "rust",
    ".py": "python",
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
}

BUILD_SYSTEMS = {
    "Cargo.toml": "Rust/Cargo",
    "pyproject.toml": "Python/pyproject",
    "setup.py": "Python/setuptools",
    "package.json": "Node.js/npm",
    "go.mod": "Go/modules",
    "pom.xml": "Java/Maven",
    "build.gradle": "Java/Gradle",
    "CMakeLists.txt": "C++/CMake",
}

# Manifests the engine reads (crate roots)
FETCHED_MANIFESTS = {"Cargo.toml"}

BINARY_SNIFF_BYTES = 8192

_DOC_PREFIXES = ("README", "LICENSE", "CHANGELOG", "CONTRIBUTING")


def classify(name: str) -> str | None:
    """Return the language tag for a file name, or None if it is not analyzed."""
    if name in FETCHED_MANIFESTS:
        return "manifest"
    return LANGUAGE_BY_SUFFIX.get(posixpath.splitext(name)[1])


@dataclass(frozen=True)
class _Task:
    order: int
    path: str
    language: str


class SourceScanner:
    """Depth-first walk of one repository.

    ``collect`` is lazy: directories are listed as the caller iterates, and
    with ``max_workers > 1`` file fetches run ahead in a thread pool while
    results are still yielded in traversal order.
    """

    def __init__(
        self,
        client: RepositoryClient,
        exclusion_patterns: list[str] | None = None,
        max_file_size: int = 1_000_000,
        max_workers: int = 1,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.exclusion_patterns = list(
            DEFAULT_EXCLUSION_PATTERNS if exclusion_patterns is None else exclusion_patterns
        )
        self.max_file_size = max_file_size
        self.max_workers = max(1, max_workers)
        self.cancel = cancel
        self.structure = RepositoryStructure()
        self._warnings: list[tuple[int, AnalysisWarning]] = []
        self._warnings_lock = threading.Lock()
        self._order = itertools.count()
        self._languages: Counter = Counter()

    @classmethod
    def from_settings(
        cls,
        client: RepositoryClient,
        settings: Settings | None = None,
        cancel: threading.Event | None = None,
    ) -> "SourceScanner":
        settings = settings or get_settings()
        return cls(
            client,
            exclusion_patterns=settings.exclusion_patterns,
            max_file_size=settings.max_file_size,
            max_workers=settings.max_concurrent_requests,
            cancel=cancel,
        )

    @property
    def warnings(self) -> list[AnalysisWarning]:
        with self._warnings_lock:
            return [w for _, w in sorted(self._warnings, key=lambda pair: pair[0])]

    def collect(self, root_path: str = "") -> Iterator[FetchedFile]:
        self.structure.ref = self.client.repository.ref
        tasks = self._walk(root_path.strip("/"))
        try:
            if self.max_workers == 1:
                for task in tasks:
                    fetched = self._fetch(task)
                    if fetched is not None:
                        self._check_cancel()
                        yield fetched
            else:
                yield from self._collect_concurrently(tasks)
        finally:
            self._finish_structure()

    def _collect_concurrently(self, tasks) -> Iterator[FetchedFile]:
        window = deque()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            try:
                for task in tasks:
                    window.append(executor.submit(self._fetch, task))
                    if len(window) > self.max_workers:
                        fetched = window.popleft().result()
                        if fetched is not None:
                            self._check_cancel()
                            yield fetched
                while window:
                    fetched = window.popleft().result()
                    if fetched is not None:
                        self._check_cancel()
                        yield fetched
            finally:
                for future in window:
                    future.cancel()

    def _walk(self, path: str) -> Iterator[_Task]:
        self._check_cancel()
        try:
            entries = self.client.list_directory(path)
        except FetchFailed as e:
            logger.warning("Skipping directory %s: %s", path or "/", e)
            self._warn(path or "/", "fetch", f"directory skipped: {e}")
            return

        for entry in entries:
            if self._excluded(entry.path):
                logger.debug("Excluded %s", entry.path)
                continue
            self._note(entry)
            if entry.is_dir:
                yield from self._walk(entry.path)
            elif entry.is_file:
                language = classify(entry.name)
                if language is None:
                    continue
                if entry.size > self.max_file_size:
                    logger.warning("Skipping %s: %d bytes exceeds max file size", entry.path, entry.size)
                    self._warn(entry.path, "skipped", f"file too large ({entry.size} bytes)")
                    continue
                yield _Task(order=next(self._order), path=entry.path, language=language)

    def _fetch(self, task: _Task) -> FetchedFile | None:
        self._check_cancel()
        try:
            content = self.client.fetch_file(task.path)
        except FetchFailed as e:
            logger.warning("Skipping file %s: %s", task.path, e)
            self._warn(task.path, "fetch", f"file skipped: {e}", order=task.order)
            return None
        if task.language != "manifest" and b"\0" in content[:BINARY_SNIFF_BYTES]:
            logger.debug("Skipping binary content in %s", task.path)
            self._warn(task.path, "skipped", "binary content", order=task.order)
            return None
        return FetchedFile(path=task.path, content=content, language=task.language, order=task.order)

    def _excluded(self, path: str) -> bool:
        parts = path_parts(path)
        for pattern in self.exclusion_patterns:
            if fnmatchcase(path, pattern) or any(fnmatchcase(part, pattern) for part in parts):
                return True
        return False

    def _note(self, entry: DirectoryEntry) -> None:
        """Record layout facts about a listed entry."""
        structure = self.structure
        parts = path_parts(entry.path)
        lowered = [p.lower() for p in parts]
        if parts and parts[0] == "src":
            structure.has_src_directory = True
        if any(p in ("tests", "test") for p in lowered) or "test" in entry.name.lower():
            structure.has_tests = True
        if entry.is_dir:
            if entry.name.lower() in ("docs", "doc"):
                structure.has_docs = True
            return
        if entry.name.endswith(".md") or entry.name.startswith(_DOC_PREFIXES):
            structure.has_docs = True
        build_system = BUILD_SYSTEMS.get(entry.name)
        if build_system:
            structure.manifests.append(entry.path)
            if build_system not in structure.build_systems:
                structure.build_systems.append(build_system)
        language = _LANGUAGE_NAMES.get(posixpath.splitext(entry.name)[1])
        if language:
            self._languages[language] += 1

    def _finish_structure(self) -> None:
        self.structure.language_counts = dict(self._languages)
        if self._languages:
            self.structure.primary_language = self._languages.most_common(1)[0][0]

    def _warn(self, path: str, kind: str, message: str, order: int | None = None) -> None:
        if order is None:
            order = next(self._order)
        with self._warnings_lock:
            self._warnings.append((order, AnalysisWarning(path=path, kind=kind, message=message)))

    def _check_cancel(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise Cancelled("Analysis cancelled")
