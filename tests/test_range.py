import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from imagestream.server.range import _iter_bytes_range, _parse_range_header, content_disposition, ranged_bytes_response


def test_parse_range_basic() -> None:
    assert _parse_range_header("bytes=0-99", 1000) == (0, 99)


def test_parse_range_open_end() -> None:
    assert _parse_range_header("bytes=100-", 1000) == (100, 999)


def test_parse_range_suffix() -> None:
    assert _parse_range_header("bytes=-200", 1000) == (800, 999)


def test_parse_range_clamps_end() -> None:
    assert _parse_range_header("bytes=900-5000", 1000) == (900, 999)


def test_parse_range_invalid() -> None:
    assert _parse_range_header("nope", 1000) is None
    assert _parse_range_header("bytes=999-100", 1000) is None
    assert _parse_range_header("bytes=abc-", 1000) is None
    assert _parse_range_header("bytes=-0", 1000) is None


def test_iter_bytes_range_chunks() -> None:
    data = bytes(range(10))
    assert b"".join(_iter_bytes_range(data, 2, 7, chunk_size=3)) == data[2:8]


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    payload = b"0123456789" * 10

    @app.get("/blob")
    def blob(request: Request):
        return ranged_bytes_response(request, payload, media_type="video/mp4", filename="clip.mp4")

    return TestClient(app)


def test_ranged_response_full(client: TestClient) -> None:
    r = client.get("/blob")
    assert r.status_code == 200
    assert r.headers["accept-ranges"] == "bytes"
    assert r.headers["content-length"] == "100"
    assert len(r.content) == 100


def test_ranged_response_partial(client: TestClient) -> None:
    r = client.get("/blob", headers={"Range": "bytes=10-19"})
    assert r.status_code == 206
    assert r.headers["content-range"] == "bytes 10-19/100"
    assert r.content == b"0123456789"


def test_content_disposition_ascii_name() -> None:
    assert content_disposition("inline", "clip.mp4") == 'inline; filename="clip.mp4"'


def test_content_disposition_non_ascii_name() -> None:
    value = content_disposition("inline", "şarkı.mp4")
    assert value == "inline; filename=\"sark.mp4\"; filename*=UTF-8''%C5%9Fark%C4%B1.mp4"
    value.encode("latin-1")


def test_content_disposition_strips_quotes_and_controls() -> None:
    assert content_disposition("attachment", 'a"b\\c\x00\n.mp4') == 'attachment; filename="abc.mp4"'


def test_content_disposition_fallback_names() -> None:
    assert content_disposition("inline", "日本.mp4").startswith('inline; filename="download.mp4"; filename*=')
    assert content_disposition("inline", "") == 'inline; filename="download"'
