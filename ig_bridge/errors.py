"""
Error taxonomy for the bridge.

Every failure carries a stable string `code` so the bridge server can hand a
structured `{ok: false, code, message}` envelope to its caller.
"""


class BridgeError(Exception):
    """Structured error for bridge consumers."""

    def __init__(self, code: str, message: str, status_code: int | None = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidArgument(BridgeError):
    def __init__(self, message: str):
        super().__init__("INVALID_ARGUMENT", message, 400)


class LoginRequired(BridgeError):
    """Raised locally, before any network traffic, when the account is logged out."""

    def __init__(self, message: str = "User not logged in. Please call login() and then try again."):
        super().__init__("LOGIN_REQUIRED", message, 401)


class TransportFailure(BridgeError):
    """Socket/connection level failure reported by libcurl."""

    def __init__(
        self,
        message: str,
        curl_code: int | None = None,
        response_received: bool = False,
    ):
        self.curl_code = curl_code
        self.response_received = response_received
        super().__init__("REQUEST_FAILED", message)


class Throttled(BridgeError):
    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(
            "THROTTLED",
            f"Throttled by Instagram because of too many API requests ({uri}).",
            429,
        )


class ApiCallFailed(BridgeError):
    """The server answered, but marked the call as failed."""

    def __init__(self, response_type: str, server_message: str | None, status_code: int | None = None):
        self.response_type = response_type
        self.server_message = server_message
        super().__init__("API_CALL_FAILED", f"{response_type}: {server_message}", status_code)


class ServerDroppedChunks(BridgeError):
    """The upload server lost track of earlier chunks mid-sequence."""

    def __init__(self, filename: str, reply: bytes):
        self.filename = filename
        self.reply = reply
        snippet = reply[:100].decode("utf-8", errors="replace")
        super().__init__(
            "UPLOAD_FAILED",
            f'Upload of "{filename}" failed. Instagram\'s server returned an unexpected reply: {snippet}',
            502,
        )


class MalformedResponse(BridgeError):
    def __init__(self, message: str, body: bytes = b"", status_code: int | None = None):
        self.body = body
        snippet = body[:300].decode("utf-8", errors="replace")
        if snippet:
            message = f"{message}: {snippet}"
        super().__init__("PARSE_ERROR", message, status_code)
