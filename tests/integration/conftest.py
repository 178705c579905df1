"""Integration fixtures: a fake GitHub contents API behind httpx.

Everything above the HTTP transport is real. Only ``httpx.Client.request``
is replaced.
"""

import base64
import json
from unittest.mock import MagicMock, patch
from urllib.parse import unquote

import httpx
import pytest

from github_repo_analyzer.settings import Settings

API = "https://api.github.com/repos/octo/demo"


def _response(status_code, body, headers=None):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.content = json.dumps(body).encode()
    resp.json.return_value = body
    resp.text = json.dumps(body)
    resp.headers = headers or {}
    return resp


class FakeGitHub:
    """Serves a repository described as {path: text} with explicit directories."""

    def __init__(self, files, missing=(), default_branch="main"):
        self.files = dict(files)
        self.missing = list(missing)
        self.default_branch = default_branch
        self.calls = []

    def _children(self, directory):
        seen = {}
        prefix = f"{directory}/" if directory else ""
        for path in list(self.files) + list(self.missing):
            if not path.startswith(prefix):
                continue
            head, _, rest = path[len(prefix):].partition("/")
            seen.setdefault(head, "dir" if rest or path in self.missing else "file")
        return seen

    def request(self, method, url, params=None):
        self.calls.append(url)
        if url == API:
            return _response(200, {"full_name": "octo/demo", "default_branch": self.default_branch})
        path = unquote(url[len(f"{API}/contents/"):]).strip("/")
        if path in self.missing:
            return _response(404, {"message": "Not Found"})
        if path in self.files:
            text = self.files[path]
            return _response(200, {
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "type": "file",
                "size": len(text.encode()),
                "encoding": "base64",
                "content": base64.b64encode(text.encode()).decode(),
            })
        children = self._children(path)
        if not children:
            return _response(404, {"message": "Not Found"})
        listing = []
        for name, kind in children.items():
            full = f"{path}/{name}" if path else name
            size = len(self.files[full].encode()) if kind == "file" and full in self.files else 0
            listing.append({"name": name, "path": full, "type": kind, "size": size})
        return _response(200, listing)


@pytest.fixture(autouse=True)
def _no_sleep():
    with patch("github_repo_analyzer.rate_limit.time.sleep"):
        yield


@pytest.fixture
def settings():
    return Settings(_env_file=None, github_token="test-token", max_concurrent_requests=2, backoff_base=0)


@pytest.fixture
def serve():
    """Install a FakeGitHub for the duration of the test."""
    patches = []

    def install(files, **kwargs):
        github = FakeGitHub(files, **kwargs)
        p = patch.object(httpx.Client, "request", side_effect=github.request)
        p.start()
        patches.append(p)
        return github

    yield install
    for p in patches:
        p.stop()
