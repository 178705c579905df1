"""Helpers for repository references and repository paths."""

import posixpath
import re
from urllib.parse import urlparse

from .errors import InvalidRepositoryRef
from .models import GITHUB_HOST, RepositoryRef

_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


def parse_repository(value: str, ref: str | None = None) -> RepositoryRef:
    """Parse a repository reference.

    Accepts ``owner/name``, ``owner/name@ref``, ``https://github.com/owner/name``
    (optionally ending in ``.git`` or ``/tree/<ref>``). An explicit ``ref``
    argument wins over one embedded in the value.
    """
    text = (value or "").strip()
    if not text:
        raise InvalidRepositoryRef("Repository reference is empty")

    host = GITHUB_HOST
    embedded_ref = None
    if "://" in text or text.startswith(f"{GITHUB_HOST}/"):
        parsed = urlparse(text if "://" in text else f"https://{text}")
        host = parsed.netloc or GITHUB_HOST
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) < 2:
            raise InvalidRepositoryRef(f"Not a repository URL: {value}")
        owner, name = parts[0], parts[1]
        if len(parts) > 2:
            if parts[2] != "tree" or len(parts) < 4:
                raise InvalidRepositoryRef(f"Not a repository URL: {value}")
            embedded_ref = "/".join(parts[3:])
    else:
        repo, _, embedded_ref = text.partition("@")
        parts = repo.split("/")
        if len(parts) != 2:
            raise InvalidRepositoryRef(f"Expected owner/name, got: {value}")
        owner, name = parts
        embedded_ref = embedded_ref or None

    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not _NAME.match(owner) or not _NAME.match(name):
        raise InvalidRepositoryRef(f"Invalid owner or repository name: {value}")

    return RepositoryRef(owner=owner, name=name, ref=ref or embedded_ref, host=host)


def join_path(parent: str, name: str) -> str:
    """Join repository-relative paths; the root is the empty string."""
    return posixpath.join(parent, name) if parent else name


def path_parts(path: str) -> list[str]:
    return [p for p in path.split("/") if p]
