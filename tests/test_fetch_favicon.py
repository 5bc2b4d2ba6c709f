import base64
import threading

import httpx

from marktree.favicon import FaviconFetcher, IconFetchPool, IconResult, extract_icon_link, icon_candidates

PNG = b"\x89PNG\r\n\x1a\nfake"


def _fetcher(handler, **kwargs) -> FaviconFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    return FaviconFetcher(client, **kwargs)


def test_extract_icon_link_resolves_relative_href():
    html = b"""
    <html><head>
      <title>X</title>
      <link rel="stylesheet" href="/main.css">
      <link rel="shortcut icon" href="/assets/favicon-32.png">
    </head><body><p>hello</p></body></html>
    """
    assert extract_icon_link(html, base_url="https://example.com/a/b") == "https://example.com/assets/favicon-32.png"


def test_extract_icon_link_none_when_not_declared():
    assert extract_icon_link(b"<html><head><title>X</title></head></html>", base_url="https://example.com/") is None
    assert extract_icon_link(b"", base_url="https://example.com/") is None


def test_candidates_are_tried_in_order():
    assert icon_candidates("a.com") == [
        "https://icons.duckduckgo.com/ip3/a.com.ico",
        "https://www.google.com/s2/favicons?domain=a.com&sz=64",
        "https://a.com/favicon.ico",
    ]


def test_first_image_source_wins():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/x-icon"}, content=PNG)

    with _fetcher(handler) as f:
        res = f.fetch("https://a.com/page")
    assert res.icon_uri == "https://icons.duckduckgo.com/ip3/a.com.ico"
    assert res.icon_data == "data:image/x-icon;base64," + base64.b64encode(PNG).decode("ascii")


def test_falls_through_errors_and_non_images():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.host)
        if request.url.host == "icons.duckduckgo.com":
            return httpx.Response(404)
        if request.url.host == "www.google.com":
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html></html>")
        return httpx.Response(200, headers={"content-type": "image/png; charset=binary"}, content=PNG)

    res = _fetcher(handler).fetch("https://a.com/")
    assert seen == ["icons.duckduckgo.com", "www.google.com", "a.com"]
    assert res.icon_uri == "https://a.com/favicon.ico"
    assert res.icon_data.startswith("data:image/png;base64,")


def test_transport_errors_are_contained():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/favicon.ico":
            return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG)
        raise httpx.ConnectError("boom", request=request)

    res = _fetcher(handler).fetch("https://a.com/")
    assert res.icon_uri == "https://a.com/favicon.ico"


def test_declared_page_icon_is_the_last_resort():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/page":
            return httpx.Response(
                200,
                headers={"content-type": "text/html"},
                content=b'<html><head><link rel="icon" href="/static/i.png"></head></html>',
            )
        if request.url.path == "/static/i.png":
            return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG)
        return httpx.Response(404)

    res = _fetcher(handler).fetch("https://a.com/page")
    assert res.icon_uri == "https://a.com/static/i.png"

    res = _fetcher(handler, discover_page_icon=False).fetch("https://a.com/page")
    assert res == IconResult()


def test_total_failure_resolves_to_empty_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    res = _fetcher(handler).fetch("https://a.com/")
    assert (res.icon_data, res.icon_uri) == (None, None)


def test_url_without_host_makes_no_requests():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("unexpected request")

    assert _fetcher(handler).fetch("not a url") == IconResult()


def test_pool_reports_queue_depth_and_runs_completion_handlers():
    gate = threading.Event()
    depths = []
    done = []

    def fetch(url):
        gate.wait(5)
        return IconResult(icon_uri=url)

    pool = IconFetchPool(fetch, jobs=1, on_queue_change=depths.append)
    try:
        futs = [pool.submit(f"https://{i}.test/", done.append) for i in range(3)]
        assert pool.pending == 3
        gate.set()
        assert pool.join(timeout=5)
    finally:
        pool.shutdown()

    assert [f.result().icon_uri for f in futs] == ["https://0.test/", "https://1.test/", "https://2.test/"]
    assert [r.icon_uri for r in done] == ["https://0.test/", "https://1.test/", "https://2.test/"]
    assert depths[:3] == [1, 2, 3]
    assert depths[-1] == 0
    assert pool.pending == 0


def test_pool_turns_fetch_errors_into_empty_results():
    def fetch(url):
        raise RuntimeError("boom")

    got = []
    pool = IconFetchPool(fetch, jobs=2)
    try:
        fut = pool.submit("https://a.com/", got.append)
        assert fut.result(timeout=5) == IconResult()
    finally:
        pool.shutdown()
    assert got == [IconResult()]
    assert pool.pending == 0


def test_pool_survives_a_failing_completion_handler():
    def boom(_result):
        raise ValueError("handler bug")

    pool = IconFetchPool(lambda url: IconResult(icon_uri=url), jobs=1)
    try:
        assert pool.submit("https://a.com/", boom).result(timeout=5).icon_uri == "https://a.com/"
        assert pool.submit("https://b.com/").result(timeout=5).icon_uri == "https://b.com/"
    finally:
        pool.shutdown()
