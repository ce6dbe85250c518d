"""Worker process evaluating one request line."""
from multiprocessing.connection import Connection
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from arithmetic_gpa_server.common.dispatcher import dispatch
from arithmetic_gpa_server.common.logger import logger
from arithmetic_gpa_server.common.operations import Operation, OperationResult, Status
from arithmetic_gpa_server.common.protocol import decode_request, encode_reply


def process_request(line: bytes, line_number: int = 1) -> Tuple[Operation, OperationResult]:
    """
    Decode and evaluate one request line, turning any failure into a malformed reply.

    :param bytes line: Raw request line
    :param int line_number: Position of the request, for logging

    :return: Tuple of (declared kind, evaluation result)
    :rtype: Tuple[Operation, OperationResult]
    """
    try:
        request = decode_request(line)
        return request.kind, dispatch(request)
    except Exception as exc:
        logger.error(
            f"👷❌ Worker failed on line {line_number}: {exc}\n"
            f"Invalid request, could not evaluate: {line!r}"
        )
        return Operation.INVALID, OperationResult.failed(Status.MALFORMED_STRUCTURE)


class WorkerProcess(BaseModel):
    """
    Worker process responsible for evaluating a single request line.

    Lifecycle:
        - Spawned by the parent server process
        - Receives one request line only
        - Sends the encoded reply through a Pipe
        - Terminates immediately after computation
    """

    # Make the Pydantic instance immutable (read-only) for safety
    # Allow arbitrary types like multiprocessing.Connection
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    conn: Connection = Field(..., description="Connection object for sending replies back to server")
    request: bytes = Field(..., description="Single request line, '<kind-code>:<body>'")
    line_number: int = Field(..., ge=1, description="Position of the request in the connection")

    @field_validator("request")
    def request_must_not_be_empty(cls, v: bytes) -> bytes:
        """Ensure that the request line is not empty."""
        if not v.strip():
            raise ValueError("Request cannot be empty")
        return v

    def run(self) -> None:
        """
        Evaluate the request and send the reply through the pipe.

        :return: None
        """
        logger.info(f"👷🏁 Worker started on line {self.line_number}: {self.request!r}")

        kind, result = process_request(self.request, self.line_number)

        try:
            self.conn.send(
                {
                    "line": self.line_number,
                    "request": self.request,
                    "kind": int(kind),
                    "reply": encode_reply(result),
                }
            )
        finally:
            # Always close the connection
            self.conn.close()

        logger.info(f"👷✅ Worker finished on line {self.line_number}: {result.status.name} {result.result}")
