"""GitHub REST API client for reading one repository, with quota tracking and retries."""

import base64
import binascii
import logging
import random
import re
import threading
from urllib.parse import quote

import httpx

from .errors import Cancelled, PermanentFetchError, TransientFetchError
from .models import ApiResponse, DirectoryEntry, RepositoryRef
from .rate_limit import RateLimiter, RequestSlots, pause
from .settings import Settings, get_settings
from .utils import join_path

logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

API_BASE = "https://api.github.com"
USER_AGENT = "github-repo-analyzer"
PER_PAGE = 100
BACKOFF_FACTOR = 2

_NEXT_LINK = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?')


class _RateLimitError(Exception):
    def __init__(self, headers):
        self.headers = headers


class _RetryableError(Exception):
    pass


class RepositoryClient:
    """Read-only client for the contents of one repository at one ref.

    Every request goes through the same ``RateLimiter`` and ``RequestSlots``,
    so a client instance may be shared by the scanner's fetch threads.
    """

    def __init__(
        self,
        repository: RepositoryRef,
        token: str | None = None,
        api_base: str = API_BASE,
        max_concurrent_requests: int = 4,
        retry_attempts: int = 3,
        default_cooldown: float = 60.0,
        backoff_base: float = 1.0,
        timeout: float = 30.0,
        cancel: threading.Event | None = None,
    ):
        self.repository = repository
        self.api_base = api_base.rstrip("/")
        self.retry_attempts = retry_attempts
        self.backoff_base = backoff_base
        self.cancel = cancel
        self.limiter = RateLimiter(default_cooldown=default_cooldown, max_throttles=retry_attempts)
        self.slots = RequestSlots(max_concurrent_requests)
        self._counter_lock = threading.Lock()
        self.requests = 0
        self.retries = 0

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"bearer {token}"
        else:
            logger.info("GITHUB_TOKEN is not set; using unauthenticated requests (lower rate limit)")
        self._client = httpx.Client(headers=headers, timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        repository: RepositoryRef,
        settings: Settings | None = None,
        cancel: threading.Event | None = None,
    ) -> "RepositoryClient":
        settings = settings or get_settings()
        return cls(
            repository,
            token=settings.github_token,
            api_base=settings.api_base,
            max_concurrent_requests=settings.max_concurrent_requests,
            retry_attempts=settings.retry_attempts,
            default_cooldown=settings.default_cooldown,
            backoff_base=settings.backoff_base,
            timeout=settings.request_timeout,
            cancel=cancel,
        )

    @property
    def _repo_url(self) -> str:
        return f"{self.api_base}/repos/{self.repository.owner}/{self.repository.name}"

    def _contents_url(self, path: str) -> str:
        return f"{self._repo_url}/contents/{quote(path.strip('/'), safe='/')}"

    def _ref_params(self) -> dict:
        return {"ref": self.repository.ref} if self.repository.ref else {}

    # Single attempt: no retry or throttling here.
    def _do_fetch(self, url: str, params: dict | None, path: str) -> ApiResponse:
        with self.slots:
            if self.cancel is not None and self.cancel.is_set():
                raise Cancelled("Analysis cancelled")
            resp = self._client.request("GET", url, params=params)
        with self._counter_lock:
            self.requests += 1

        if resp.status_code == 429 or (
            resp.status_code == 403 and "rate limit" in resp.text.lower()
        ):
            raise _RateLimitError(resp.headers)

        self.limiter.observe(resp.headers)

        if resp.status_code >= 500:
            raise _RetryableError(f"GitHub API error {resp.status_code}")

        if 200 <= resp.status_code < 300:
            try:
                body = resp.json() if resp.content else {}
            except ValueError as e:
                raise PermanentFetchError(path, "malformed", e, status=resp.status_code) from e
            link = resp.headers.get("link")
            return ApiResponse(
                status=resp.status_code,
                body=body,
                etag=resp.headers.get("etag"),
                link=link,
                next_url=_parse_next_link(link),
            )

        # Client error -- not retryable
        raise PermanentFetchError(
            path,
            _error_kind(resp.status_code),
            f"GitHub API error {resp.status_code}",
            status=resp.status_code,
        )

    def get(self, url: str, params: dict | None = None, path: str = "") -> ApiResponse:
        """GET with throttling and retries.

        Transient failures are attempted at most ``retry_attempts`` times.
        Rate-limit responses wait for the quota reset and do not use up
        transient attempts; they have their own budget in the limiter.
        """
        attempt = 0
        throttles = 0
        while True:
            self.limiter.acquire(path, self.cancel)
            try:
                return self._do_fetch(url, params, path)
            except _RateLimitError as e:
                throttles += 1
                self.limiter.rate_limited(e.headers, path, attempt=throttles)
            except (_RetryableError, httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
                attempt += 1
                if attempt >= self.retry_attempts:
                    raise TransientFetchError(path, e, attempts=attempt) from e
                with self._counter_lock:
                    self.retries += 1
                delay = self.backoff_base * BACKOFF_FACTOR ** (attempt - 1)
                delay += random.uniform(0, self.backoff_base)
                logger.info(
                    "%s for %s, retry %d/%d in %.1fs",
                    e, path or "/", attempt, self.retry_attempts - 1, delay,
                )
                pause(delay, self.cancel)

    def resolve_ref(self) -> str:
        """Return the ref to analyze, looking up the default branch when none was given."""
        if self.repository.ref:
            return self.repository.ref
        resp = self.get(self._repo_url, path="")
        branch = resp.body.get("default_branch") if isinstance(resp.body, dict) else None
        if not branch:
            raise PermanentFetchError("", "malformed", "repository has no default_branch")
        self.repository = self.repository.with_ref(branch)
        return branch

    def list_directory(self, path: str = "") -> list[DirectoryEntry]:
        """List the immediate entries of a directory, following pagination."""
        url = self._contents_url(path)
        params = {**self._ref_params(), "per_page": PER_PAGE}
        entries: list[DirectoryEntry] = []
        while url:
            resp = self.get(url, params, path)
            body = resp.body
            if isinstance(body, dict):
                # The path names a single file
                body = [body]
            if not isinstance(body, list):
                raise PermanentFetchError(path, "malformed", "unexpected listing body")
            for raw in body:
                entries.append(_entry(raw, path))
            # The next link already carries the query string
            url = resp.next_url
            params = None
        return entries

    def fetch_file(self, path: str) -> bytes:
        """Fetch the decoded content of one file."""
        resp = self.get(self._contents_url(path), self._ref_params() or None, path)
        body = resp.body
        if not isinstance(body, dict):
            raise PermanentFetchError(path, "malformed", "path is a directory")
        content = body.get("content")
        encoding = body.get("encoding")
        if encoding == "base64" and content is not None:
            try:
                return base64.b64decode(content)
            except (binascii.Error, ValueError) as e:
                raise PermanentFetchError(path, "malformed", e) from e
        if not body.get("size"):
            return b""
        raise PermanentFetchError(path, "malformed", f"content unavailable (encoding {encoding!r})")

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _entry(raw, parent: str) -> DirectoryEntry:
    try:
        return DirectoryEntry(
            name=raw["name"],
            path=raw.get("path") or join_path(parent, raw["name"]),
            kind=raw["type"],
            size=int(raw.get("size") or 0),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PermanentFetchError(parent, "malformed", f"bad directory entry: {raw!r}") from e


def _error_kind(status: int) -> str:
    if status == 404:
        return "not_found"
    if status == 401:
        return "unauthorized"
    if status == 403:
        return "forbidden"
    return "client_error"


def _parse_next_link(link: str | None) -> str | None:
    if not link:
        return None
    match = _NEXT_LINK.search(link)
    return match.group(1) if match else None
