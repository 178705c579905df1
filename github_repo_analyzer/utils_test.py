"""Unit tests for utils module."""

import pytest

from github_repo_analyzer.errors import InvalidRepositoryRef
from github_repo_analyzer.utils import join_path, parse_repository, path_parts


def describe_parse_repository():

    def it_parses_owner_and_name():
        ref = parse_repository("owner/repo")
        assert (ref.owner, ref.name, ref.ref) == ("owner", "repo", None)
        assert ref.host == "github.com"

    def it_parses_embedded_ref():
        assert parse_repository("owner/repo@v1.2").ref == "v1.2"

    def it_parses_standard_url():
        ref = parse_repository("https://github.com/owner/repo")
        assert ref.full_name == "owner/repo"

    def it_strips_git_suffix():
        assert parse_repository("https://github.com/owner/repo.git").name == "repo"

    def it_parses_tree_url_with_slashes_in_ref():
        ref = parse_repository("https://github.com/o/r/tree/feat/branch")
        assert ref.ref == "feat/branch"

    def it_accepts_url_without_scheme():
        assert parse_repository("github.com/o/r").full_name == "o/r"

    def it_prefers_explicit_ref():
        assert parse_repository("o/r@main", ref="dev").ref == "dev"

    def it_rejects_empty_value():
        with pytest.raises(InvalidRepositoryRef):
            parse_repository("  ")

    def it_rejects_missing_name():
        with pytest.raises(InvalidRepositoryRef):
            parse_repository("https://github.com/owner")

    def it_rejects_blob_urls():
        with pytest.raises(InvalidRepositoryRef):
            parse_repository("https://github.com/o/r/blob/main/file.rs")

    def it_rejects_too_many_segments():
        with pytest.raises(InvalidRepositoryRef):
            parse_repository("a/b/c")

    def it_rejects_bad_characters():
        with pytest.raises(InvalidRepositoryRef):
            parse_repository("own er/repo")

    def it_is_a_value_error():
        with pytest.raises(ValueError):
            parse_repository("nope")

    def it_renders_as_string():
        assert str(parse_repository("o/r@main")) == "github.com/o/r@main"


def describe_join_path():
    def it_returns_name_at_root():
        assert join_path("", "src") == "src"

    def it_joins_nested_paths():
        assert join_path("src/a", "b.rs") == "src/a/b.rs"


def describe_path_parts():
    def it_drops_empty_segments():
        assert path_parts("/src//lib.rs") == ["src", "lib.rs"]
