"""Decode and evaluate request bodies: two-operand expressions and mark/hours rosters."""
from enum import Enum
import string
from typing import Optional

from pydantic import BaseModel

from arithmetic_gpa_server.common.operations import (
    Operation,
    OperationResult,
    Status,
    decode_operation,
)

# Two-character sequence closing a roster
ROSTER_TERMINATOR: str = "-1"


def _as_text(data: bytes, length: Optional[int]) -> str:
    """
    Return the first ``length`` bytes of the buffer as text, one character per byte.

    :param bytes data: Raw message buffer
    :param Optional[int] length: Declared message length, the whole buffer when None

    :return: Decoded message
    :rtype: str
    :raises ValueError: If the declared length is negative or exceeds the buffer
    """
    if length is None:
        length = len(data)
    if length < 0 or length > len(data):
        raise ValueError(f"Declared length {length} does not fit a buffer of {len(data)} bytes")
    # latin-1 maps every byte to exactly one character, so decoding never fails
    return bytes(data[:length]).decode("latin-1")


class Side(str, Enum):
    """Operand currently being filled."""

    LEFT = "left"
    RIGHT = "right"


class ExpressionState(BaseModel):
    """Parser state of a ``<int> <op> <int>`` expression."""

    side: Side = Side.LEFT
    left: int = 0
    right: int = 0
    operator_count: int = 0
    operator: Operation = Operation.INVALID

    def push_digit(self, digit: int) -> None:
        if self.side is Side.LEFT:
            self.left = self.left * 10 + digit
        else:
            self.right = self.right * 10 + digit


class ExpressionEvaluator:
    """
    Evaluate a single binary arithmetic expression against the operation declared by the client.

    The body holds exactly one operator between two non-negative integers,
    whitespace being insignificant (e.g. ``"12 + 7"``). The operator found in
    the body must match the declared operation, otherwise the request is
    rejected with Status.OPERATOR_MISMATCH.

    Status mapping:
        - MALFORMED_STRUCTURE: more than one operator, operator first or last,
          unknown operator character, or no operator at all
        - OPERATOR_MISMATCH: valid operator differing from the declared one
        - DIVISION_BY_ZERO: division with a zero right operand
    """

    @staticmethod
    def scan(text: str, expected: Operation) -> tuple[ExpressionState, Status]:
        """
        Scan the expression left to right, building the parser state.

        :param str text: Expression text
        :param Operation expected: Operation declared by the client

        :return: Tuple of (parser state, scan status)
        :rtype: tuple[ExpressionState, Status]
        """
        state = ExpressionState()

        for index, char in enumerate(text):
            if char in string.whitespace:
                continue

            if char in string.digits:
                state.push_digit(int(char))
                continue

            # Anything else marks the operator boundary
            state.operator_count += 1
            if state.operator_count > 1:
                return state, Status.MALFORMED_STRUCTURE

            # An operator first or last means one operand is missing
            if not text[:index].strip(string.whitespace) or not text[index + 1:].strip(string.whitespace):
                return state, Status.MALFORMED_STRUCTURE

            operator = decode_operation(char)
            if operator is Operation.INVALID:
                return state, Status.MALFORMED_STRUCTURE
            if operator is not expected:
                return state, Status.OPERATOR_MISMATCH

            state.operator = operator
            state.side = Side.RIGHT

        return state, Status.OK

    @staticmethod
    def apply(state: ExpressionState) -> OperationResult:
        """
        Apply the scanned operator to both operands.

        :param ExpressionState state: Completed parser state

        :return: Evaluation result
        :rtype: OperationResult
        """
        left, right = state.left, state.right

        if state.operator is Operation.ADD:
            value = left + right
        elif state.operator is Operation.SUBTRACT:
            value = left - right
        elif state.operator is Operation.MULTIPLY:
            value = left * right
        elif state.operator is Operation.DIVIDE:
            if right == 0:
                return OperationResult.failed(Status.DIVISION_BY_ZERO)
            # Operands are never negative, so floor division truncates
            value = left // right
        else:
            return OperationResult.failed(Status.MALFORMED_STRUCTURE)

        return OperationResult.ok(float(value))

    @staticmethod
    def evaluate(data: bytes, expected: Operation, length: Optional[int] = None) -> OperationResult:
        """
        Evaluate an expression body for the declared operation.

        :param bytes data: Raw message buffer
        :param Operation expected: Operation declared by the client
        :param Optional[int] length: Number of bytes of the buffer holding the message

        :return: Evaluation result
        :rtype: OperationResult
        """
        state, status = ExpressionEvaluator.scan(_as_text(data, length), expected)
        if status is not Status.OK:
            return OperationResult.failed(status)
        try:
            return ExpressionEvaluator.apply(state)
        except OverflowError:
            # Result too large for a float
            return OperationResult.failed(Status.MALFORMED_STRUCTURE)


class RosterField(str, Enum):
    """Roster field currently being filled."""

    MARK = "mark"
    HOURS = "hours"


class RosterState(BaseModel):
    """Parser state of a ``mark,hours,...,-1`` roster."""

    current: RosterField = RosterField.MARK
    mark: int = 0
    hours: int = 0
    weighted_sum: int = 0
    max_possible: int = 0
    commas: int = 0
    # Set while the last significant character was a comma
    after_comma: bool = False

    def push_digit(self, digit: int) -> None:
        self.after_comma = False
        if self.current is RosterField.MARK:
            self.mark = self.mark * 10 + digit
        else:
            self.hours = self.hours * 10 + digit

    def close_field(self) -> None:
        """Handle a comma: complete the pending entry after an hours field and switch fields."""
        if self.current is RosterField.HOURS:
            self.weighted_sum += self.hours * self.mark
            self.max_possible += self.hours * 100
            self.mark = 0
            self.hours = 0
            self.current = RosterField.MARK
        else:
            self.current = RosterField.HOURS
        self.commas += 1
        self.after_comma = True

    def close_list(self) -> None:
        """Handle the terminator: the comma introducing it delimits no field."""
        if self.after_comma:
            self.commas -= 1
            self.after_comma = False

    @property
    def average(self) -> float:
        return self.weighted_sum / (self.commas + 1)


class RosterEvaluator:
    """
    Compute the weighted average of a roster of (mark, hours) pairs.

    The body reads ``mark,hours,mark,hours,...,-1`` where ``-1`` ends the list
    and whitespace is insignificant. Each completed pair adds ``mark * hours``
    to the weighted sum, and the result is the weighted sum divided by the
    number of field-delimiting commas plus one.

    Examples:
        - ``"90,3,80,3,-1"``: weighted sum 510, three delimiting commas, result 127.5
    """

    @staticmethod
    def scan(text: str) -> tuple[RosterState, Status]:
        """
        Scan the roster left to right, building the parser state.

        :param str text: Roster text

        :return: Tuple of (parser state, scan status)
        :rtype: tuple[RosterState, Status]
        """
        state = RosterState()

        for index, char in enumerate(text):
            if char in string.whitespace:
                continue

            if char in string.digits:
                state.push_digit(int(char))
            elif char == ",":
                state.close_field()
            elif text.startswith(ROSTER_TERMINATOR, index):
                state.close_list()
                break
            else:
                return state, Status.MALFORMED_STRUCTURE

        return state, Status.OK

    @staticmethod
    def evaluate(data: bytes, length: Optional[int] = None) -> OperationResult:
        """
        Evaluate a roster body.

        :param bytes data: Raw message buffer
        :param Optional[int] length: Number of bytes of the buffer holding the message

        :return: Evaluation result
        :rtype: OperationResult
        """
        state, status = RosterEvaluator.scan(_as_text(data, length))
        if status is not Status.OK:
            return OperationResult.failed(status)
        try:
            return OperationResult.ok(state.average)
        except OverflowError:
            return OperationResult.failed(Status.MALFORMED_STRUCTURE)
