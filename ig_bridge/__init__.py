"""Instagram private-API upload bridge: transport, retries, multipart and chunked uploads."""

from .account import AccountSession
from .chunked_upload import UploadSession, upload_video_chunks, upload_video_data
from .client import ApiClient
from .cookies import CookieEntry, CookieStore, FileCookiePersistence, MemoryCookiePersistence
from .decoder import DecodedResponse, api_body_decode, decode
from .errors import (
    ApiCallFailed,
    BridgeError,
    InvalidArgument,
    LoginRequired,
    MalformedResponse,
    ServerDroppedChunks,
    Throttled,
    TransportFailure,
)
from .multipart import MultipartPart, encode_multipart
from .retry import RetryMiddleware, decide
from .transport import Transport

__all__ = [
    "AccountSession",
    "ApiCallFailed",
    "ApiClient",
    "BridgeError",
    "CookieEntry",
    "CookieStore",
    "DecodedResponse",
    "FileCookiePersistence",
    "InvalidArgument",
    "LoginRequired",
    "MalformedResponse",
    "MemoryCookiePersistence",
    "MultipartPart",
    "RetryMiddleware",
    "ServerDroppedChunks",
    "Throttled",
    "Transport",
    "TransportFailure",
    "UploadSession",
    "api_body_decode",
    "decide",
    "decode",
    "encode_multipart",
    "upload_video_chunks",
    "upload_video_data",
]
