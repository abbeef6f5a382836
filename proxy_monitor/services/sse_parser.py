from __future__ import annotations

import codecs
from collections.abc import AsyncIterator
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class SSEEvent:
    event: str
    data: str
    id: str | None = None


def _split_frame(buffer: str) -> tuple[str, str] | None:
    lf_idx = buffer.find("\n\n")
    crlf_idx = buffer.find("\r\n\r\n")
    if lf_idx == -1 and crlf_idx == -1:
        return None
    if crlf_idx == -1 or (lf_idx != -1 and lf_idx < crlf_idx):
        return buffer[:lf_idx], buffer[lf_idx + 2 :]
    return buffer[:crlf_idx], buffer[crlf_idx + 4 :]


def _parse_frame(frame: str) -> SSEEvent | None:
    event = "message"
    event_id: str | None = None
    data_lines: list[str] = []
    for raw_line in frame.split("\n"):
        line = raw_line.rstrip("\r")
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value.strip() or "message"
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value.strip() or None
    if not data_lines:
        return None
    return SSEEvent(event=event, data="\n".join(data_lines), id=event_id)


async def iter_sse_events(byte_iter: AsyncIterator[bytes]) -> AsyncIterator[SSEEvent]:
    """
    Parse a text/event-stream body from raw bytes.

    Chunks may split multi-byte UTF-8 sequences (provider names are often
    Chinese), so decoding is incremental. Comment lines and frames without
    `data:` are skipped; `id:` is surfaced so consumers can deduplicate.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in byte_iter:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        while (split := _split_frame(buffer)) is not None:
            frame, buffer = split
            parsed = _parse_frame(frame)
            if parsed is not None:
                yield parsed


__all__ = ["SSEEvent", "iter_sse_events"]
