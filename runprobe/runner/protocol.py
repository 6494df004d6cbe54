"""Length-prefixed JSON framing shared by the client and the worker.

Frame format (both directions):

    Content-Length: <decimal byte count>\\r\\n\\r\\n<json body>

Request body:
    {
        "method": str,          # "route" is accepted as an alias
        "params": dict,         # optional
    }

Response body:
    {"result": Any} or {"error": str}

The protocol is half-duplex: one request, then exactly one response, so
frames carry no request identifiers.
"""

import json
import re
from typing import Any, Dict, Optional

from runprobe.runner.errors import IncompleteMessage, MalformedMessage

HEADER_TERMINATOR = b"\r\n\r\n"
MAX_HEADER_BYTES = 1024
MAX_CONTENT_LENGTH = 64 * 1024 * 1024

SHUTDOWN = "shutdown"
UNKNOWN_ROUTE = "unknown route"

_CONTENT_LENGTH_RE = re.compile(rb"^Content-Length:\s*(\d+)\s*$", re.IGNORECASE | re.MULTILINE)


def encode(body: Dict[str, Any]) -> bytes:
    """
    Serialize a request or response body into one frame.

    Args:
        body: JSON-serializable mapping

    Returns:
        Header and UTF-8 encoded JSON body
    """
    payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
    return b"Content-Length: %d\r\n\r\n" % len(payload) + payload


def decode(stream, max_content_length: int = MAX_CONTENT_LENGTH) -> Dict[str, Any]:
    """
    Read exactly one frame from a binary stream and parse its body.

    The stream only needs a ``read(n)`` method; short reads are retried
    until the declared length is satisfied.

    Raises:
        IncompleteMessage: stream closed before a full frame, or the header
            is unusable, or the declared length exceeds the limit
        MalformedMessage: the body is not a JSON object
    """
    headers = read_headers(stream)
    match = _CONTENT_LENGTH_RE.search(headers)
    if match is None:
        raise IncompleteMessage(f"Missing Content-Length header: {headers!r}")

    length = int(match.group(1))
    if length > max_content_length:
        raise IncompleteMessage(
            f"Declared Content-Length {length} exceeds limit of {max_content_length} bytes"
        )

    return decode_body(read_exactly(stream, length))


def read_headers(stream) -> bytes:
    """Read up to and including the blank line that ends the header block."""
    data = bytearray()
    while not data.endswith(HEADER_TERMINATOR):
        if len(data) >= MAX_HEADER_BYTES:
            raise IncompleteMessage(f"Header block exceeds {MAX_HEADER_BYTES} bytes")
        chunk = stream.read(1)
        if not chunk:
            if data:
                raise IncompleteMessage(f"Stream closed inside header: {bytes(data)!r}")
            raise IncompleteMessage("Stream closed before a header arrived")
        data += chunk
    return bytes(data)


def read_exactly(stream, length: int) -> bytes:
    """Read ``length`` bytes, retrying partial reads until the stream closes."""
    data = bytearray()
    while len(data) < length:
        chunk = stream.read(length - len(data))
        if not chunk:
            raise IncompleteMessage(f"Stream closed after {len(data)} of {length} body bytes")
        data += chunk
    return bytes(data)


def decode_body(data: bytes) -> Dict[str, Any]:
    try:
        body = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"Invalid JSON body: {e}") from e
    if not isinstance(body, dict):
        raise MalformedMessage(f"Expected a JSON object, got {type(body).__name__}")
    return body


def make_request(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a request envelope; ``params`` is left out when absent."""
    request: Dict[str, Any] = {"method": method}
    if params is not None:
        request["params"] = params
    return request


def request_name(body: Dict[str, Any]) -> Optional[str]:
    name = body.get("method")
    if name is None:
        name = body.get("route")
    return name


def result_response(result: Any) -> Dict[str, Any]:
    return {"result": result}


def error_response(message: str) -> Dict[str, Any]:
    return {"error": message}
