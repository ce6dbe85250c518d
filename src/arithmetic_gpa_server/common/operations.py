"""Operation tags, status codes and the pydantic models exchanged with the evaluators."""
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Operation(IntEnum):
    """Request kind declared by the client, with its wire code."""

    INVALID = 0
    ADD = 1
    SUBTRACT = 2
    MULTIPLY = 3
    DIVIDE = 4
    ROSTER_AVERAGE = 5
    TERMINATE = 6


# Operations an expression may contain
ARITHMETIC_OPERATIONS: frozenset = frozenset(
    {Operation.ADD, Operation.SUBTRACT, Operation.MULTIPLY, Operation.DIVIDE}
)


class Status(IntEnum):
    """Evaluation status returned to the transport layer."""

    OK = 0
    MALFORMED_STRUCTURE = -1
    DIVISION_BY_ZERO = -3
    OPERATOR_MISMATCH = -4


_SYMBOLS: dict[str, Operation] = {
    "+": Operation.ADD,
    "-": Operation.SUBTRACT,
    "*": Operation.MULTIPLY,
    "/": Operation.DIVIDE,
}


def decode_operation(symbol: str) -> Operation:
    """
    Map a single operator character to its operation.

    :param str symbol: Operator character

    :return: Matching operation, or Operation.INVALID for anything else
    :rtype: Operation
    """
    return _SYMBOLS.get(symbol, Operation.INVALID)


class OperationRequest(BaseModel):
    """Represents a single request: the declared kind and the raw message body."""

    kind: Operation = Field(..., description="Request kind declared by the client")
    body: bytes = Field(default=b"", description="Raw message body to evaluate")


class OperationResult(BaseModel):
    """Represents the outcome of an evaluation."""

    status: Status = Field(..., description="Evaluation status")
    result: Optional[float] = Field(default=None, description="Numeric result, set only on success")

    @model_validator(mode="after")
    def result_only_on_success(self) -> "OperationResult":
        """Ensure a result is present exactly when the status is OK."""
        if (self.status is Status.OK) != (self.result is not None):
            raise ValueError(f"Result must be set if and only if status is OK (status={self.status.name})")
        return self

    @classmethod
    def ok(cls, value: float) -> "OperationResult":
        return cls(status=Status.OK, result=value)

    @classmethod
    def failed(cls, status: Status) -> "OperationResult":
        return cls(status=status)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK
