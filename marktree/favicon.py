from __future__ import annotations

import base64
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from typing import Callable, List, Optional, Set
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup  # type: ignore

from .log import get_logger

log = get_logger(__name__)

DEFAULT_JOBS = 6
_PAGE_MAX_BYTES = 200_000


@dataclass(frozen=True)
class IconResult:
    icon_data: Optional[str] = None
    icon_uri: Optional[str] = None


def icon_candidates(host: str) -> List[str]:
    return [
        f"https://icons.duckduckgo.com/ip3/{host}.ico",
        f"https://www.google.com/s2/favicons?domain={host}&sz=64",
        f"https://{host}/favicon.ico",
    ]


class FaviconFetcher:
    """Resolve a page URL to an inline icon, trying a fixed list of sources.

    Every failure is contained per source; `fetch` never raises and returns an
    empty IconResult when no source produced an image.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        timeout_s: float = 10.0,
        user_agent: str = "marktree",
        discover_page_icon: bool = True,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            timeout=httpx.Timeout(timeout_s, connect=timeout_s),
        )
        self.discover_page_icon = discover_page_icon

    def __enter__(self) -> "FaviconFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __call__(self, url: str) -> IconResult:
        return self.fetch(url)

    def fetch(self, url: str) -> IconResult:
        try:
            host = urlparse(url).hostname
        except ValueError:
            host = None
        if not host:
            return IconResult()

        tried = icon_candidates(host)
        for icon_url in tried:
            res = self._try_icon(icon_url)
            if res is not None:
                return res

        if self.discover_page_icon:
            declared = self._declared_icon_url(url)
            if declared and declared not in tried:
                res = self._try_icon(declared)
                if res is not None:
                    return res

        log.debug("No icon found for %s", url)
        return IconResult()

    def _try_icon(self, icon_url: str) -> Optional[IconResult]:
        try:
            r = self.client.get(icon_url)
            r.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.debug("Icon source failed (%s): %s", icon_url, e)
            return None
        ctype = r.headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if not ctype.startswith("image/") or not r.content:
            log.debug("Icon source returned %r, not an image: %s", ctype or "no content type", icon_url)
            return None
        data = base64.b64encode(r.content).decode("ascii")
        return IconResult(icon_data=f"data:{ctype};base64,{data}", icon_uri=icon_url)

    def _declared_icon_url(self, page_url: str) -> Optional[str]:
        try:
            r = self.client.get(page_url)
            r.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.debug("Page fetch for icon discovery failed (%s): %s", page_url, e)
            return None
        return extract_icon_link(r.content[:_PAGE_MAX_BYTES], base_url=str(r.url))


def extract_icon_link(content: bytes, *, base_url: str) -> Optional[str]:
    """Absolute URL of the first icon <link> a page declares, if any."""
    if not content:
        return None
    soup = BeautifulSoup(content, "lxml")
    for link in soup.find_all("link"):
        rel = " ".join(x.lower() for x in (link.get("rel") or []))
        href = (link.get("href") or "").strip()
        if href and "icon" in rel:
            return urljoin(base_url, href)
    return None


class IconFetchPool:
    """Bounded worker pool for icon fetches with an observable queue depth.

    Jobs run in submission order on at most `jobs` threads. `pending` counts
    queued plus running jobs; the queue-change listener sees every change.
    A completion handler passed to `submit` runs on the worker before the
    returned future resolves.
    """

    def __init__(
        self,
        fetch_fn: Callable[[str], IconResult],
        *,
        jobs: int = DEFAULT_JOBS,
        on_queue_change: Optional[Callable[[int], None]] = None,
    ):
        self._fetch = fetch_fn
        self.jobs = max(1, int(jobs))
        self._executor = ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="marktree-icon")
        self._lock = threading.Lock()
        self._pending = 0
        self._futures: Set[Future] = set()
        self._listener = on_queue_change

    def set_queue_change_listener(self, fn: Optional[Callable[[int], None]]) -> None:
        self._listener = fn

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def submit(self, url: str, on_done: Optional[Callable[[IconResult], None]] = None) -> "Future[IconResult]":
        with self._lock:
            self._pending += 1
            pending = self._pending
        self._notify(pending)
        try:
            fut = self._executor.submit(self._run, url, on_done)
        except RuntimeError:
            # Pool already shut down.
            with self._lock:
                self._pending -= 1
                pending = self._pending
            self._notify(pending)
            raise
        with self._lock:
            self._futures.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for every submitted job; True when none is left running."""
        with self._lock:
            futs = list(self._futures)
        _done, not_done = wait_futures(futs, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, url: str, on_done: Optional[Callable[[IconResult], None]]) -> IconResult:
        try:
            try:
                result = self._fetch(url)
            except Exception:
                log.exception("Icon fetch failed unexpectedly for %s", url)
                result = IconResult()
            if on_done is not None:
                try:
                    on_done(result)
                except Exception:
                    log.exception("Icon completion handler failed for %s", url)
            return result
        finally:
            with self._lock:
                self._pending -= 1
                pending = self._pending
            self._notify(pending)

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._futures.discard(fut)

    def _notify(self, pending: int) -> None:
        fn = self._listener
        if fn is not None:
            fn(pending)
