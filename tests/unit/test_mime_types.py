"""
Unit tests for MIME type detection.
"""

from pathlib import Path

import pytest

from assetserver.http.mime_types import (
    DEFAULT_MIME_TYPE,
    get_content_type,
    get_mime_type,
    is_text_type,
)


@pytest.mark.parametrize("name, expected", [
    ("index.html", "text/html"),
    ("site.css", "text/css"),
    ("app.js", "text/javascript"),
    ("logo.PNG", "image/png"),
    ("font.woff2", "font/woff2"),
    ("icon.svg", "image/svg+xml"),
    ("module.wasm", "application/wasm"),
])
def test_known_extensions(name, expected):
    assert get_mime_type(name) == expected


def test_unknown_extension_is_octet_stream():
    assert get_mime_type("weird.xyz") == DEFAULT_MIME_TYPE
    assert get_mime_type("Makefile") == DEFAULT_MIME_TYPE


def test_accepts_path_objects():
    assert get_mime_type(Path("/srv/public/app.js")) == "text/javascript"


def test_text_types_get_charset():
    assert get_content_type("sample.txt") == "text/plain; charset=utf-8"
    assert get_content_type("data.json") == "application/json; charset=utf-8"
    assert get_content_type("image.png") == "image/png"


def test_is_text_type():
    assert is_text_type("text/css")
    assert is_text_type("image/svg+xml")
    assert not is_text_type("application/octet-stream")
