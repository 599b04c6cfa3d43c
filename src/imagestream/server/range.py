from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterator, Optional, Tuple
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import StreamingResponse

_UNSAFE_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f"\\]')


def content_disposition(disposition: str, filename: str) -> str:
    """Build a Content-Disposition value that is safe for any filename.

    Header values must be latin-1, so the plain ``filename`` carries an ASCII
    fallback and ``filename*`` carries the UTF-8 name (RFC 6266 / RFC 5987).
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", filename or "").strip()
    ascii_name = unicodedata.normalize("NFKD", cleaned).encode("ascii", "ignore").decode("ascii").strip()
    if not ascii_name or ascii_name.startswith("."):
        # Keep a bare extension such as ".mp4" left over from a non-ASCII stem.
        ascii_name = "download" + (ascii_name if ascii_name.startswith(".") else "")
    value = f'{disposition}; filename="{ascii_name}"'
    if cleaned and cleaned != ascii_name:
        value += f"; filename*=UTF-8''{quote(cleaned, safe='')}"
    return value


def _parse_range_header(range_header: str, size: int) -> Optional[Tuple[int, int]]:
    # Expected format: bytes=start-end
    if not range_header or not range_header.startswith("bytes="):
        return None
    ranges = range_header.replace("bytes=", "", 1).strip()
    # Only the first range of a multi-range request is served
    if "," in ranges:
        ranges = ranges.split(",", 1)[0].strip()
    if "-" not in ranges:
        return None
    start_s, end_s = (part.strip() for part in ranges.split("-", 1))

    if start_s == "":
        # suffix bytes: e.g. "-500"
        try:
            length = int(end_s)
        except ValueError:
            return None
        if length <= 0 or size == 0:
            return None
        length = min(length, size)
        return size - length, size - 1

    try:
        start = int(start_s)
        end = size - 1 if end_s == "" else int(end_s)
    except ValueError:
        return None

    start = max(start, 0)
    end = min(end, size - 1)
    if end < start:
        return None
    return start, end


def _iter_bytes_range(data: bytes, start: int, end: int, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
    view = memoryview(data)
    pos = start
    while pos <= end:
        stop = min(pos + chunk_size, end + 1)
        yield bytes(view[pos:stop])
        pos = stop


def ranged_bytes_response(
    request: Request,
    data: bytes,
    *,
    media_type: str,
    filename: Optional[str] = None,
) -> StreamingResponse:
    """Serve in-memory bytes with HTTP Range support so HTML5 video can seek."""
    size = len(data)
    range_header = request.headers.get("range")
    byte_range = _parse_range_header(range_header, size) if range_header else None

    headers: Dict[str, str] = {"Accept-Ranges": "bytes"}
    if filename:
        headers["Content-Disposition"] = content_disposition("inline", filename)

    if byte_range is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(_iter_bytes_range(data, 0, size - 1), status_code=200, media_type=media_type, headers=headers)

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(_iter_bytes_range(data, start, end), status_code=206, media_type=media_type, headers=headers)
