from __future__ import annotations

import os
import re
from mimetypes import guess_type
from pathlib import Path
from typing import NamedTuple, Optional

import anyio
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from groovebox.core import settings
from groovebox.services.storage_service import StorageService, get_storage


router = APIRouter()

# one range only: "bytes=first-last", "bytes=first-" or "bytes=-suffix"
_BYTES_RANGE = re.compile(r"bytes\s*=\s*(\d*)\s*-\s*(\d*)", re.IGNORECASE)


class RangeNotSatisfiable(ValueError):
    pass


class ByteRange(NamedTuple):
    first: int
    last: int  # inclusive

    @property
    def length(self) -> int:
        return self.last - self.first + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.first}-{self.last}/{size}"


def parse_range_header(range_header: str, *, size: int) -> Optional[ByteRange]:
    """
    Resolve a Range header against a file of ``size`` bytes.

    No header means the whole file (None). Anything that cannot be served as a
    single satisfiable range raises RangeNotSatisfiable. Open and oversized
    ends are clamped to the last byte.
    """
    if not range_header:
        return None

    match = _BYTES_RANGE.fullmatch(range_header.strip())
    if match is None:
        raise RangeNotSatisfiable(f"unsupported range {range_header!r}")
    first_s, last_s = match.groups()
    last_byte = size - 1

    if not first_s:
        if not last_s or int(last_s) == 0 or size == 0:
            raise RangeNotSatisfiable("empty suffix range")
        return ByteRange(max(0, size - int(last_s)), last_byte)

    first = int(first_s)
    last = int(last_s) if last_s else last_byte
    if first > last_byte or last < first:
        raise RangeNotSatisfiable(f"range {first}-{last} outside 0-{last_byte}")
    return ByteRange(first, min(last, last_byte))


async def _iter_file(path: Path, *, start: int, count: int, chunk_size: int = 64 * 1024):
    async with await anyio.open_file(path, mode="rb") as f:
        await f.seek(start)
        remaining = count
        while remaining > 0:
            chunk = await f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


async def build_range_response(
    path: Path,
    request: Request,
    *,
    content_type: Optional[str] = None,
    cache_control: Optional[str] = None,
) -> Response:
    """Serve one file honouring a single HTTP Range (bytes) request."""
    try:
        stat_result = await anyio.to_thread.run_sync(os.stat, path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="not found")
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="not found")

    size = stat_result.st_size
    content_type = content_type or guess_type(str(path))[0] or "application/octet-stream"

    try:
        byte_range = parse_range_header(request.headers.get("range", ""), size=size)
    except RangeNotSatisfiable:
        # 416 must tell the client how big the file really is
        return Response(
            status_code=416,
            headers={"Content-Range": f"bytes */{size}", "Accept-Ranges": "bytes"},
        )

    headers = {"Accept-Ranges": "bytes", "Content-Type": content_type}
    if cache_control:
        headers["Cache-Control"] = cache_control

    if byte_range is None:
        byte_range, status_code = ByteRange(0, size - 1), 200
    else:
        status_code = 206
        headers["Content-Range"] = byte_range.content_range(size)
    headers["Content-Length"] = str(byte_range.length)

    if request.method.upper() == "HEAD":
        return Response(status_code=status_code, headers=headers)

    return StreamingResponse(
        _iter_file(path, start=byte_range.first, count=byte_range.length),
        status_code=status_code,
        headers=headers,
    )


@router.get(f"{settings.STORAGE_BASE_URL}/{{rel_path:path}}")
@router.head(f"{settings.STORAGE_BASE_URL}/{{rel_path:path}}")
async def get_storage_file(
    rel_path: str,
    request: Request,
    storage: StorageService = Depends(get_storage),
) -> Response:
    """
    Serve files under STORAGE_DIR with HTTP Range (bytes) support.
    """
    path = storage.abs_path(rel_path)
    if path is None:
        raise HTTPException(status_code=404, detail="not found")
    return await build_range_response(path, request)
