"""Tests for angkor_offline.worker.cache_storage module."""

import httpx

from angkor_offline.worker.cache_storage import CachedResponse, CacheStorage, NamedCache

URL = "http://app.test/js/main.js"


def make_response(body: bytes = b"body", status: int = 200, **headers) -> httpx.Response:
    return httpx.Response(status, content=body, headers=headers)


class TestCachedResponse:
    """Stored response conversion."""

    def test_from_response_keeps_status_headers_body(self):
        response = make_response(b"console.log(1)", 200, **{"content-type": "text/javascript"})
        entry = CachedResponse.from_response(response, URL)
        assert entry.url == URL
        assert entry.status == 200
        assert entry.headers["content-type"] == "text/javascript"
        assert entry.content == b"console.log(1)"
        assert entry.size == len(b"console.log(1)")

    def test_to_response_is_fresh_each_time(self):
        entry = CachedResponse(url=URL, status=200, content=b"abc")
        first = entry.to_response()
        second = entry.to_response()
        assert first is not second
        assert first.content == second.content == b"abc"
        assert str(first.request.url) == URL

    def test_to_response_drops_encoding_headers(self):
        entry = CachedResponse(
            url=URL,
            status=200,
            headers={"Content-Encoding": "gzip", "content-length": "999", "x-app": "1"},
            content=b"plain",
        )
        response = entry.to_response()
        assert "content-encoding" not in response.headers
        assert response.headers["content-length"] == "5"
        assert response.headers["x-app"] == "1"


class TestNamedCache:
    """Single named cache behaviour."""

    def test_put_and_match(self):
        cache = NamedCache("static")
        cache.put(URL, make_response(b"js"))
        assert URL in cache
        assert cache.match(URL).content == b"js"
        assert cache.match("http://app.test/missing") is None

    def test_put_replaces_existing(self):
        cache = NamedCache("dynamic")
        cache.put(URL, make_response(b"old"))
        cache.put(URL, make_response(b"new"))
        assert len(cache) == 1
        assert cache.match(URL).content == b"new"

    def test_delete(self):
        cache = NamedCache("dynamic")
        cache.put(URL, make_response())
        assert cache.delete(URL) is True
        assert cache.delete(URL) is False
        assert len(cache) == 0

    def test_evicts_least_recently_used_by_count(self):
        cache = NamedCache("dynamic", max_entries=2)
        cache.put("http://app.test/a", make_response())
        cache.put("http://app.test/b", make_response())
        cache.match("http://app.test/a")
        cache.put("http://app.test/c", make_response())
        assert cache.keys() == ["http://app.test/a", "http://app.test/c"]

    def test_evicts_by_bytes(self):
        cache = NamedCache("dynamic", max_bytes=10)
        cache.put("http://app.test/a", make_response(b"123456"))
        cache.put("http://app.test/b", make_response(b"123456"))
        assert cache.keys() == ["http://app.test/b"]
        assert cache.size_bytes() == 6

    def test_single_oversized_entry_is_kept(self):
        cache = NamedCache("dynamic", max_bytes=4)
        cache.put(URL, make_response(b"too large"))
        assert cache.keys() == [URL]


class TestCacheStorage:
    """The set of named caches."""

    def test_open_creates_once(self):
        caches = CacheStorage()
        first = caches.open("app-static-v1")
        assert caches.open("app-static-v1") is first
        assert caches.has("app-static-v1")
        assert caches.get("app-static-v1") is first
        assert caches.get("other") is None

    def test_match_searches_in_creation_order(self):
        caches = CacheStorage()
        caches.open("static").put(URL, make_response(b"static"))
        caches.open("dynamic").put(URL, make_response(b"dynamic"))
        assert caches.match(URL).content == b"static"

    def test_match_miss(self):
        caches = CacheStorage()
        caches.open("static")
        assert caches.match(URL) is None

    def test_delete_and_keys(self):
        caches = CacheStorage()
        caches.open("a")
        caches.open("b")
        assert caches.delete("a") is True
        assert caches.delete("a") is False
        assert caches.keys() == ["b"]
