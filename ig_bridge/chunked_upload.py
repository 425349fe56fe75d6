"""
Chunked video upload.

The upload server takes a video in exactly four sequential byte-range POSTs.
While it is healthy it acknowledges every chunk but the last with
"0-<bytes so far>/<total>", and answers the last one with a JSON object.
When it is overloaded it drops the chunks it already had: the
acknowledged range stops starting at 0, and the final reply is just another
range string. Such an attempt cannot be salvaged, only redone from scratch.
"""

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from .constants import VIDEO_CHUNK_COUNT, VIDEO_EXTENSION_FALLBACK
from .decoder import DecodedResponse, api_body_decode, map_response
from .errors import InvalidArgument, ServerDroppedChunks
from .logger import logger
from .request import RequestOptions
from .responses import UploadVideoResponse
from .transport import Transport


@dataclass(frozen=True)
class UploadSession:
    """Identifiers returned by the "request upload URL" step; good for one attempt."""

    upload_id: str
    upload_url: str
    job: str
    boundary: str | None = None


@dataclass(frozen=True)
class ChunkRange:
    index: int  # 1-based
    start: int
    end: int  # inclusive

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total: int) -> str:
        return f"bytes {self.start}-{self.end}/{total}"


class UploadState(enum.Enum):
    INIT = "init"
    SENDING_CHUNK = "sending_chunk"
    CHUNK_ACKED = "chunk_acked"
    COMPLETED = "completed"
    ABORTED = "aborted"


# ─── Reply predicates ────────────────────────────────────────────────────────
# Both rest on undocumented server behaviour; keep every such check here.


def range_starts_at_zero(body: bytes) -> bool:
    """Intermediate ack still counts from byte 0, i.e. no chunk was dropped."""
    return body.startswith(b"0-")


def is_json_object_reply(body: bytes) -> bool:
    """Final reply is a JSON object rather than yet another range string."""
    return body[:1] == b"{"


def plan_chunks(total_size: int, count: int = VIDEO_CHUNK_COUNT) -> list[ChunkRange]:
    """Contiguous ranges of ceil(total/count) bytes; the last one takes the remainder."""
    chunk_size = -(-total_size // count)
    chunks = []
    start = 0
    for index in range(1, count + 1):
        size = min(chunk_size, total_size - start)
        if size <= 0:
            raise InvalidArgument(
                f"File of {total_size} bytes is too small to split into {count} chunks"
            )
        chunks.append(ChunkRange(index, start, start + size - 1))
        start += size
    return chunks


class ChunkedVideoUpload:
    """One attempt at uploading a whole file. Chunks go out strictly in order."""

    def __init__(self, transport: Transport, video_path: str | Path, session: UploadSession):
        self.transport = transport
        self.path = Path(video_path)
        self.session = session
        self.state = UploadState.INIT
        self.chunk_index = 0
        self.replies: list[DecodedResponse] = []

    def _chunk_headers(self, chunk: ChunkRange, total: int, extension: str) -> dict[str, str]:
        return {
            "User-Agent": self.transport.account.user_agent,
            "Connection": "keep-alive",
            "Accept": "*/*",
            "Cookie2": "$Version=1",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/octet-stream",
            "Session-ID": self.session.upload_id,
            "Accept-Language": "en-en",
            "Content-Disposition": f'attachment; filename="video.{extension}"',
            "Content-Range": chunk.content_range(total),
            "job": self.session.job,
        }

    def run(self) -> UploadVideoResponse:
        self.transport.ensure_logged_in()

        extension = self.path.suffix[1:] or VIDEO_EXTENSION_FALLBACK
        total = self.path.stat().st_size
        chunks = plan_chunks(total)

        reply: DecodedResponse | None = None
        with self.path.open("rb") as handle:
            for chunk in chunks:
                self.state = UploadState.SENDING_CHUNK
                self.chunk_index = chunk.index
                data = handle.read(chunk.size)
                reply = self.transport.api_request(
                    "POST",
                    self.session.upload_url,
                    RequestOptions(headers=self._chunk_headers(chunk, total, extension), body=data),
                    debug_uploaded_bytes=True,
                )
                self.replies.append(reply)

                if chunk.index < len(chunks) and not range_starts_at_zero(reply.body):
                    logger.warning(
                        f"Upload server dropped chunks of {self.path.name} "
                        f"(chunk {chunk.index}/{len(chunks)} ack: {reply.body[:60]!r}); aborting attempt"
                    )
                    self.state = UploadState.ABORTED
                    break
                self.state = UploadState.CHUNK_ACKED

        # From here on, `reply` is the final (or aborting) chunk's reply.
        if not is_json_object_reply(reply.body):
            self.state = UploadState.ABORTED
            raise ServerDroppedChunks(str(self.path), reply.body)

        result = map_response(UploadVideoResponse, api_body_decode(reply.body), True, reply.status)
        self.state = UploadState.COMPLETED
        return result


def upload_video_chunks(transport: Transport, video_path: str | Path, session: UploadSession) -> UploadVideoResponse:
    return ChunkedVideoUpload(transport, video_path, session).run()


SessionSource = Union[UploadSession, Callable[[int], UploadSession]]


def upload_video_data(
    transport: Transport,
    video_path: str | Path,
    session: SessionSource,
    max_attempts: int = 4,
) -> UploadVideoResponse:
    """
    Upload a whole video, redoing the entire chunk sequence whenever the
    server drops chunks. `session` is either reused for every attempt or a
    callable given the attempt number that returns the session to use.
    Any other error propagates at once.
    """
    if max_attempts < 1:
        raise InvalidArgument("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        current = session(attempt) if callable(session) else session
        try:
            return upload_video_chunks(transport, video_path, current)
        except ServerDroppedChunks as e:
            if attempt >= max_attempts:
                raise
            logger.warning(
                f"Video upload attempt {attempt}/{max_attempts} for {Path(video_path).name} failed: "
                f"{e.message}; retrying whole upload"
            )
