"""
Response decoding.

Never hand API replies to a plain json.loads: media and user ids are 64-bit
and overflow the safe integer range of many consumers. Integers beyond
2**53 - 1 are kept as their literal digit strings.
"""

import json
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any

from pydantic import ValidationError

from .errors import ApiCallFailed, MalformedResponse
from .responses import ApiResponse

MAX_SAFE_INTEGER = 2**53 - 1


@dataclass(frozen=True)
class DecodedResponse:
    status: int | None
    body: bytes
    tree: Any = None
    object: ApiResponse | None = None
    response: Any = None

    @property
    def ok(self) -> bool:
        if self.object is not None:
            return self.object.is_ok()
        return isinstance(self.tree, dict) and self.tree.get("status") == "ok"


def _parse_int(literal: str) -> int | str:
    value = int(literal)
    if abs(value) > MAX_SAFE_INTEGER:
        return literal
    return value


def api_body_decode(body: bytes | str, assoc: bool = True) -> Any:
    """
    Decode a JSON API reply, keeping big integers as strings.
    `assoc=False` gives attribute-style objects instead of dicts.
    """
    raw = body.encode("utf-8") if isinstance(body, str) else body
    try:
        return json.loads(
            raw,
            parse_int=_parse_int,
            object_hook=None if assoc else (lambda d: SimpleNamespace(**d)),
        )
    except ValueError as e:
        raise MalformedResponse(f"Invalid JSON: {e}", raw)


def map_response(
    target: type[ApiResponse],
    tree: Any,
    check_ok: bool = True,
    status_code: int | None = None,
) -> ApiResponse:
    """Map a decoded tree onto `target`; optionally insist the server marked it ok."""
    if tree is None:
        raise MalformedResponse(
            "No response from server. Either a connection or configuration error.",
            status_code=status_code,
        )
    if not isinstance(tree, dict):
        raise MalformedResponse(
            f"{target.__name__}: expected a JSON object",
            json.dumps(tree, default=str).encode("utf-8"),
            status_code,
        )
    try:
        obj = target.model_validate(tree)
    except ValidationError as e:
        raise MalformedResponse(
            f"{target.__name__}: {e.error_count()} field(s) failed validation",
            json.dumps(tree, default=str).encode("utf-8"),
            status_code,
        )
    if check_ok and not obj.is_ok():
        message = tree.get("message")
        raise ApiCallFailed(target.__name__, None if message is None else str(message), status_code)
    obj._full_response = tree
    return obj


def decode(body: bytes, target: type[ApiResponse] | None = None, status: int | None = None) -> DecodedResponse:
    """Decode `body`; with a target type, map it and validate the success flag."""
    tree = api_body_decode(body)
    if target is None:
        return DecodedResponse(status=status, body=body, tree=tree)
    return DecodedResponse(status=status, body=body, tree=tree, object=map_response(target, tree, True, status))
