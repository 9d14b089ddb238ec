"""
Unit tests for the static file handler.

Path resolution is the security boundary, so it gets the most cases.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from assetserver.errors import Forbidden
from assetserver.handlers import static
from assetserver.handlers.cache import FileCache
from assetserver.handlers.static import StaticFileHandler, make_etag
from assetserver.http.response import HTTPStatus, format_http_date

from conftest import make_request


@pytest.fixture
def handler(root_dir: Path) -> StaticFileHandler:
    return StaticFileHandler(root_dir, chunk_size=1024)


def body_of(response) -> bytes:
    try:
        return b"".join(response.iter_body())
    finally:
        response.close()


# =============================================================================
# PATH RESOLUTION
# =============================================================================

class TestResolve:

    @pytest.mark.parametrize("raw", [
        "/../secret.txt",
        "/../../../etc/passwd",
        "/css/../../secret.txt",
        "/%2e%2e/secret.txt",
        "/%2E%2E/%2e%2e/etc/passwd",
        "/css/%2e%2e%2f%2e%2e%2fsecret.txt",
        "/..%2fsecret.txt",
        "/./../secret.txt",
    ])
    def test_climbing_above_root_is_forbidden(self, handler, raw):
        with pytest.raises(Forbidden):
            handler.resolve(raw)

    def test_double_encoding_is_decoded_once(self, handler, root_dir):
        # "%252e%252e" is the literal file name "%2e%2e", not ".."
        resolved = handler.resolve("/%252e%252e/secret.txt")

        assert resolved == root_dir.resolve() / "%2e%2e" / "secret.txt"

    def test_nul_byte_is_forbidden(self, handler):
        with pytest.raises(Forbidden):
            handler.resolve("/sample.txt%00.html")

    def test_dot_segments_inside_root(self, handler, root_dir):
        resolved = handler.resolve("/css/./../css/site.css")

        assert resolved == root_dir.resolve() / "css" / "site.css"

    def test_query_and_fragment_ignored(self, handler, root_dir):
        assert handler.resolve("/sample.txt?x=../../y#z") == root_dir.resolve() / "sample.txt"

    def test_percent_encoded_name(self, handler, root_dir):
        (root_dir / "with space.txt").write_text("spaced")

        assert handler.resolve("/with%20space.txt") == root_dir.resolve() / "with space.txt"

    def test_leading_double_slash_stays_inside_root(self, handler, root_dir):
        assert handler.resolve("//etc/passwd") == root_dir.resolve() / "etc" / "passwd"

    def test_symlink_escaping_root_is_forbidden(self, handler, root_dir, tmp_path):
        (root_dir / "escape").symlink_to(tmp_path)

        with pytest.raises(Forbidden):
            handler.resolve("/escape/secret.txt")

    def test_symlink_within_root_allowed(self, handler, root_dir):
        (root_dir / "alias.txt").symlink_to(root_dir / "sample.txt")

        assert handler.resolve("/alias.txt") == (root_dir / "sample.txt").resolve()

    def test_sibling_with_common_prefix_is_forbidden(self, tmp_path):
        # /tmp/x/public-secrets must not pass as a child of /tmp/x/public
        root = tmp_path / "public"
        root.mkdir()
        sibling = tmp_path / "public-secrets"
        sibling.mkdir()
        (sibling / "key.pem").write_text("key")
        (root / "link").symlink_to(sibling)

        handler = StaticFileHandler(root)
        with pytest.raises(Forbidden):
            handler.resolve("/link/key.pem")

    def test_root_itself(self, handler, root_dir):
        assert handler.resolve("/") == root_dir.resolve()


# =============================================================================
# SERVING
# =============================================================================

class TestHandle:

    def test_serves_file(self, handler):
        response = handler.handle(make_request("GET", "/sample.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.headers["Content-Length"] == "5"
        assert response.headers["Cache-Control"] == "public, max-age=3600"
        assert "ETag" in response.headers
        assert "Last-Modified" in response.headers
        assert body_of(response) == b"hello"

    def test_response_is_streamed(self, handler, root_dir):
        response = handler.handle(make_request("GET", "/large.bin"))

        assert response.is_streamed
        chunks = list(response.iter_body())
        response.close()

        assert max(len(c) for c in chunks) <= 1024
        assert b"".join(chunks) == (root_dir / "large.bin").read_bytes()

    def test_directory_serves_index(self, handler):
        assert body_of(handler.handle(make_request("GET", "/"))) == b"<h1>home</h1>"
        assert body_of(handler.handle(make_request("GET", "/docs/"))) == b"<h1>docs</h1>"
        assert body_of(handler.handle(make_request("GET", "/docs"))) == b"<h1>docs</h1>"

    def test_directory_without_index_is_not_found(self, handler):
        response = handler.handle(make_request("GET", "/empty/"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_index_disabled(self, root_dir):
        handler = StaticFileHandler(root_dir, index_file=None)

        assert handler.handle(make_request("GET", "/")).status == HTTPStatus.NOT_FOUND

    def test_missing_file(self, handler):
        response = handler.handle(make_request("GET", "/missing.txt"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Not Found"}

    def test_file_used_as_directory(self, handler):
        response = handler.handle(make_request("GET", "/sample.txt/more"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_symlink_loop_is_not_found(self, handler, root_dir):
        (root_dir / "loop").symlink_to(root_dir / "loop")

        assert handler.handle(make_request("GET", "/loop")).status == HTTPStatus.NOT_FOUND

    def test_overlong_name_is_not_found(self, handler):
        response = handler.handle(make_request("GET", "/" + "a" * 1000))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_traversal_is_403_and_logged(self, handler, caplog):
        caplog.set_level(logging.WARNING, logger="assetserver.handlers.static")

        response = handler.handle(make_request("GET", "/../../etc/passwd"))

        assert response.status == HTTPStatus.FORBIDDEN
        assert json.loads(response.body) == {"error": "Forbidden"}
        assert b"passwd" not in response.body
        assert "Forbidden path" in caplog.text
        assert "127.0.0.1" in caplog.text

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS"])
    def test_method_not_allowed(self, handler, method):
        response = handler.handle(make_request(method, "/sample.txt"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_method_checked_before_path(self, handler):
        response = handler.handle(make_request("POST", "/../../etc/passwd"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED

    def test_unknown_extension(self, handler):
        response = handler.handle(make_request("GET", "/weird.xyz"))

        assert response.headers["Content-Type"] == "application/octet-stream"
        assert body_of(response) == b"\x00\x01\x02"

    def test_permission_error_is_500(self, handler, monkeypatch, caplog):
        def deny(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(static, "_open_file", deny)

        response = handler.handle(make_request("GET", "/sample.txt"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json.loads(response.body) == {"error": "Internal Server Error"}
        assert b"Permission" not in response.body
        assert "Failed to serve" in caplog.text

    def test_vanished_between_stat_and_open_is_404(self, handler, monkeypatch):
        def gone(path):
            raise FileNotFoundError(2, "No such file or directory", str(path))

        monkeypatch.setattr(static, "_open_file", gone)

        response = handler.handle(make_request("GET", "/sample.txt"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_missing_root_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            StaticFileHandler(tmp_path / "nope")


class TestHead:

    def test_head_has_headers_only(self, handler):
        response = handler.handle(make_request("HEAD", "/sample.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Length"] == "5"
        assert not response.is_streamed
        assert response.body == b""
        assert handler.active_streams == 0

    def test_head_on_missing(self, handler):
        assert handler.handle(make_request("HEAD", "/missing")).status == HTTPStatus.NOT_FOUND


class TestConditional:

    def etag_of(self, handler, path="/sample.txt"):
        response = handler.handle(make_request("GET", path))
        response.close()
        return response.headers["ETag"], response.headers["Last-Modified"]

    def test_etag_format(self, root_dir):
        st = os.stat(root_dir / "sample.txt")

        assert make_etag(st.st_size, st.st_mtime_ns) == f'"{st.st_mtime_ns:x}-5"'

    def test_if_none_match(self, handler):
        etag, _ = self.etag_of(handler)

        response = handler.handle(make_request("GET", "/sample.txt", {"If-None-Match": etag}))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.headers["ETag"] == etag
        assert "Content-Type" not in response.headers
        assert not response.is_streamed
        assert handler.active_streams == 0

    def test_if_none_match_weak_and_list(self, handler):
        etag, _ = self.etag_of(handler)

        for header in (f"W/{etag}", f'"nope", {etag}', "*"):
            response = handler.handle(make_request("GET", "/sample.txt", {"If-None-Match": header}))
            assert response.status == HTTPStatus.NOT_MODIFIED

    def test_stale_etag(self, handler):
        response = handler.handle(make_request("GET", "/sample.txt", {"If-None-Match": '"old"'}))

        assert response.status == HTTPStatus.OK
        body_of(response)

    def test_if_modified_since(self, handler):
        _, last_modified = self.etag_of(handler)

        response = handler.handle(
            make_request("GET", "/sample.txt", {"If-Modified-Since": last_modified})
        )
        assert response.status == HTTPStatus.NOT_MODIFIED

        earlier = format_http_date(datetime.now(timezone.utc) - timedelta(days=365))
        response = handler.handle(make_request("GET", "/sample.txt", {"If-Modified-Since": earlier}))
        assert response.status == HTTPStatus.OK
        body_of(response)

    def test_if_none_match_wins_over_if_modified_since(self, handler):
        _, last_modified = self.etag_of(handler)

        response = handler.handle(make_request("GET", "/sample.txt", {
            "If-None-Match": '"other"',
            "If-Modified-Since": last_modified,
        }))

        assert response.status == HTTPStatus.OK
        body_of(response)

    def test_unparseable_date_ignored(self, handler):
        response = handler.handle(
            make_request("GET", "/sample.txt", {"If-Modified-Since": "whenever"})
        )

        assert response.status == HTTPStatus.OK
        body_of(response)


class TestStreamAccounting:

    def test_active_streams_tracks_open_handles(self, handler):
        first = handler.handle(make_request("GET", "/large.bin"))
        second = handler.handle(make_request("GET", "/sample.txt"))

        assert handler.active_streams == 2

        first.close()
        assert handler.active_streams == 1

        second.close()
        second.close()
        assert handler.active_streams == 0

    def test_partial_read_then_close(self, handler):
        response = handler.handle(make_request("GET", "/large.bin"))
        body = response.iter_body()
        next(body)

        response.close()

        assert handler.active_streams == 0
        assert response.stream.closed


class TestWithCache:

    @pytest.fixture
    def cached(self, root_dir):
        return StaticFileHandler(root_dir, cache=FileCache())

    def test_small_file_served_from_memory(self, cached):
        first = cached.handle(make_request("GET", "/sample.txt"))
        second = cached.handle(make_request("GET", "/sample.txt"))

        assert not first.is_streamed
        assert first.body == second.body == b"hello"
        assert first.headers["ETag"] == second.headers["ETag"]
        assert cached.cache.stats["hits"] == 1
        assert cached.active_streams == 0

    def test_large_file_bypasses_cache(self, cached):
        response = cached.handle(make_request("GET", "/large.bin"))

        assert response.is_streamed
        assert len(cached.cache) == 0
        response.close()

    def test_file_growing_during_cache_read_is_streamed_whole(self, root_dir):
        class GrowingCache(FileCache):
            def _read_snapshot(self, path):
                with open(path, "ab") as fh:
                    fh.write(b"!" * 100)
                return super()._read_snapshot(path)

        handler = StaticFileHandler(root_dir, cache=GrowingCache(max_file_size=50))

        response = handler.handle(make_request("GET", "/sample.txt"))
        try:
            body = b"".join(response.iter_body())
        finally:
            response.close()

        assert response.is_streamed
        assert body == b"hello" + b"!" * 100
        assert response.headers["Content-Length"] == str(len(body))
        assert len(handler.cache) == 0

    def test_modified_file_is_reread(self, cached, root_dir):
        cached.handle(make_request("GET", "/sample.txt"))

        path = root_dir / "sample.txt"
        path.write_text("changed!")
        st = os.stat(path)
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))

        response = cached.handle(make_request("GET", "/sample.txt"))

        assert response.body == b"changed!"
        assert response.headers["Content-Length"] == "8"

    def test_cache_hit_honors_if_none_match(self, cached):
        etag = cached.handle(make_request("GET", "/sample.txt")).headers["ETag"]

        response = cached.handle(make_request("GET", "/sample.txt", {"If-None-Match": etag}))

        assert response.status == HTTPStatus.NOT_MODIFIED

    def test_head_does_not_populate(self, cached):
        cached.handle(make_request("HEAD", "/sample.txt"))

        assert len(cached.cache) == 0

    def test_cache_never_crosses_root(self, cached):
        response = cached.handle(make_request("GET", "/../secret.txt"))

        assert response.status == HTTPStatus.FORBIDDEN
        assert len(cached.cache) == 0
