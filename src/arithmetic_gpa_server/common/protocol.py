"""Line-based wire format shared by the server and the client.

Requests read ``<kind-code>:<body>`` and replies ``<status-code> <result>``,
e.g. ``b"1:12 + 7"`` is answered with ``b"0 19.0"``.
"""
import math

from arithmetic_gpa_server.common.operations import (
    Operation,
    OperationRequest,
    OperationResult,
    Status,
)

KIND_SEPARATOR: bytes = b":"
# Placeholder sent in place of a result when the evaluation failed
NO_RESULT: str = "nan"


def encode_request(request: OperationRequest) -> bytes:
    """Build the request line (without line terminator) for a request."""
    return str(int(request.kind)).encode() + KIND_SEPARATOR + request.body


def decode_request(line: bytes) -> OperationRequest:
    """
    Split a request line into its declared kind and body.

    :param bytes line: Raw request line

    :return: Decoded request
    :rtype: OperationRequest
    :raises ValueError: If the kind is missing, not an integer or unknown
    """
    kind_code, separator, body = line.partition(KIND_SEPARATOR)
    if not separator:
        raise ValueError(f"Missing request kind separator in {line!r}")

    try:
        kind = Operation(int(kind_code.decode("ascii").strip()))
    except ValueError as exc:
        raise ValueError(f"Invalid request kind {kind_code!r}") from exc

    return OperationRequest(kind=kind, body=body.rstrip(b"\r\n"))


def encode_reply(result: OperationResult) -> bytes:
    """Build the reply line (without line terminator) for an evaluation result."""
    value = repr(result.result) if result.is_ok else NO_RESULT
    return f"{int(result.status)} {value}".encode()


def parse_reply(line: bytes) -> OperationResult:
    """
    Parse a reply line back into an evaluation result.

    :param bytes line: Raw reply line

    :return: Parsed result
    :rtype: OperationResult
    :raises ValueError: If the line is not a valid reply
    """
    parts = line.decode("ascii").split()
    if len(parts) != 2:
        raise ValueError(f"Malformed reply {line!r}")

    status = Status(int(parts[0]))
    if status is not Status.OK:
        return OperationResult.failed(status)

    value = float(parts[1])
    if math.isnan(value):
        raise ValueError(f"Successful reply without a result: {line!r}")
    return OperationResult.ok(value)
