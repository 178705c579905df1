"""Unit tests for the source scanner."""

import threading
from unittest.mock import MagicMock

import pytest

from .errors import Cancelled, PermanentFetchError, TransientFetchError
from .models import DirectoryEntry, RepositoryRef
from .scanner import SourceScanner, classify


def _tree_client(tree, contents=None, failing=None):
    """Mock client serving a dict of directory path -> list of entry names.

    Names ending in "/" are directories. ``failing`` maps paths to exceptions.
    """
    contents = contents or {}
    failing = failing or {}
    client = MagicMock()
    client.repository = RepositoryRef("o", "r", "main")

    def list_directory(path=""):
        if path in failing:
            raise failing[path]
        entries = []
        for name in tree[path]:
            kind = "dir" if name.endswith("/") else "file"
            name = name.rstrip("/")
            full = f"{path}/{name}" if path else name
            entries.append(DirectoryEntry(name=name, path=full, kind=kind, size=len(contents.get(full, b"x"))))
        return entries

    def fetch_file(path):
        if path in failing:
            raise failing[path]
        return contents.get(path, b"fn main() {}")

    client.list_directory.side_effect = list_directory
    client.fetch_file.side_effect = fetch_file
    return client


def describe_classify():
    def it_tags_rust_and_python():
        assert classify("lib.rs") == "rust"
        assert classify("mod.py") == "python"
        assert classify("types.pyi") == "python"

    def it_tags_cargo_manifests():
        assert classify("Cargo.toml") == "manifest"

    def it_ignores_everything_else():
        assert classify("logo.png") is None
        assert classify("main.go") is None
        assert classify("README.md") is None


def describe_SourceScanner():

    def it_walks_depth_first_in_listing_order():
        tree = {
            "": ["a.rs", "src/", "z.rs"],
            "src": ["b.rs", "inner/", "c.rs"],
            "src/inner": ["d.rs"],
        }
        scanner = SourceScanner(_tree_client(tree))

        paths = [f.path for f in scanner.collect()]

        assert paths == ["a.rs", "src/b.rs", "src/inner/d.rs", "src/c.rs", "z.rs"]

    def it_assigns_increasing_traversal_order():
        tree = {"": ["a.rs", "b.py"]}
        files = list(SourceScanner(_tree_client(tree)).collect())
        assert [f.order for f in files] == sorted(f.order for f in files)
        assert [f.language for f in files] == ["rust", "python"]

    def it_skips_non_source_files_without_fetching():
        tree = {"": ["logo.png", "README.md", "lib.rs"]}
        client = _tree_client(tree)

        files = list(SourceScanner(client).collect())

        assert [f.path for f in files] == ["lib.rs"]
        client.fetch_file.assert_called_once_with("lib.rs")

    def it_skips_excluded_directories_without_listing():
        tree = {"": ["target/", "vendor/", "src/"], "src": ["lib.rs"]}
        client = _tree_client(tree)

        files = list(SourceScanner(client).collect())

        assert [f.path for f in files] == ["src/lib.rs"]
        listed = [c.args[0] for c in client.list_directory.call_args_list]
        assert listed == ["", "src"]

    def it_honors_custom_exclusion_globs():
        tree = {"": ["gen_a.rs", "b.rs"]}
        files = list(SourceScanner(_tree_client(tree), exclusion_patterns=["gen_*"]).collect())
        assert [f.path for f in files] == ["b.rs"]

    def it_warns_and_continues_when_a_directory_is_missing():
        tree = {"": ["a/", "b/"], "b": ["lib.rs"]}
        failing = {"a": PermanentFetchError("a", "not_found", "GitHub API error 404", status=404)}
        scanner = SourceScanner(_tree_client(tree, failing=failing))

        files = list(scanner.collect())

        assert [f.path for f in files] == ["b/lib.rs"]
        assert len(scanner.warnings) == 1
        assert scanner.warnings[0].path == "a"
        assert scanner.warnings[0].kind == "fetch"

    def it_warns_and_continues_when_a_file_fetch_fails():
        tree = {"": ["a.rs", "b.rs"]}
        failing = {"a.rs": TransientFetchError("a.rs", "boom", attempts=3)}
        scanner = SourceScanner(_tree_client(tree, failing=failing))

        assert [f.path for f in scanner.collect()] == ["b.rs"]
        assert [w.path for w in scanner.warnings] == ["a.rs"]

    def it_skips_oversized_files_without_fetching():
        tree = {"": ["big.rs"]}
        client = _tree_client(tree, contents={"big.rs": b"x" * 100})
        scanner = SourceScanner(client, max_file_size=10)

        assert list(scanner.collect()) == []
        client.fetch_file.assert_not_called()
        assert scanner.warnings[0].kind == "skipped"

    def it_drops_binary_content():
        tree = {"": ["weird.rs"]}
        scanner = SourceScanner(_tree_client(tree, contents={"weird.rs": b"\x00\x01\x02"}))
        assert list(scanner.collect()) == []
        assert scanner.warnings[0].message == "binary content"

    def it_is_lazy():
        tree = {"": ["a.rs", "sub/"], "sub": ["b.rs"]}
        client = _tree_client(tree)
        files = SourceScanner(client).collect()

        first = next(files)

        assert first.path == "a.rs"
        listed = [c.args[0] for c in client.list_directory.call_args_list]
        assert listed == [""]

    def it_records_repository_structure():
        tree = {
            "": ["Cargo.toml", "README.md", "src/", "tests/"],
            "src": ["lib.rs", "util.rs", "helper.py"],
            "tests": ["it.rs"],
        }
        scanner = SourceScanner(_tree_client(tree))
        list(scanner.collect())

        structure = scanner.structure
        assert structure.ref == "main"
        assert structure.has_src_directory
        assert structure.has_tests
        assert structure.has_docs
        assert structure.build_systems == ["Rust/Cargo"]
        assert structure.manifests == ["Cargo.toml"]
        assert structure.primary_language == "rust"
        assert structure.language_counts == {"rust": 3, "python": 1}

    def it_yields_in_traversal_order_with_concurrent_fetches():
        tree = {"": [f"f{i:02d}.rs" for i in range(20)]}
        scanner = SourceScanner(_tree_client(tree), max_workers=4)

        paths = [f.path for f in scanner.collect()]

        assert paths == [f"f{i:02d}.rs" for i in range(20)]

    def describe_cancellation():
        def it_stops_before_listing():
            cancel = threading.Event()
            cancel.set()
            client = _tree_client({"": ["a.rs"]})
            with pytest.raises(Cancelled):
                list(SourceScanner(client, cancel=cancel).collect())
            client.list_directory.assert_not_called()

        def it_stops_between_yields():
            cancel = threading.Event()
            client = _tree_client({"": ["a.rs", "b.rs", "c.rs"]})
            files = SourceScanner(client, cancel=cancel).collect()

            assert next(files).path == "a.rs"
            cancel.set()

            with pytest.raises(Cancelled):
                next(files)
            assert client.fetch_file.call_count == 1
