"""Test classes ExpressionEvaluator and RosterEvaluator."""
import pytest

from arithmetic_gpa_server.common.evaluator import (
    ExpressionEvaluator,
    RosterEvaluator,
    Side,
)
from arithmetic_gpa_server.common.operations import Operation, Status


@pytest.mark.parametrize("body,operation,expected", [
    (b"12 + 7", Operation.ADD, 19.0),
    (b"10 - 4", Operation.SUBTRACT, 6.0),
    (b"4 - 10", Operation.SUBTRACT, -6.0),
    (b"3 * 4", Operation.MULTIPLY, 12.0),
    (b"8 / 2", Operation.DIVIDE, 4.0),
    (b"9 / 2", Operation.DIVIDE, 4.0),  # integer division
    (b"12+7", Operation.ADD, 19.0),
    (b"  1 2 +\t7\n", Operation.ADD, 19.0),  # whitespace is skipped entirely
    (b"0 * 55", Operation.MULTIPLY, 0.0),
])
def test_expression_valid(body: bytes, operation: Operation, expected: float) -> None:
    """Evaluate returns the integer result as a float for valid expressions."""
    result = ExpressionEvaluator.evaluate(body, operation)
    assert result.status is Status.OK
    assert result.result == expected
    assert isinstance(result.result, float)


@pytest.mark.parametrize("body,operation", [
    (b"3 +", Operation.ADD),           # Trailing operator
    (b"3 + ", Operation.ADD),          # Trailing operator followed by spaces
    (b"+5", Operation.ADD),            # Leading operator
    (b"  * 5", Operation.MULTIPLY),    # Leading operator after spaces
    (b"1 + 2 + 3", Operation.ADD),     # More than one operator
    (b"5 % 3", Operation.ADD),         # Unknown operator
    (b"5 a 3", Operation.ADD),         # Letter as operator
    (b"42", Operation.ADD),            # No operator at all
    (b"", Operation.ADD),              # Empty expression
    (b"3 -", Operation.ADD),           # Position is checked before the operator
])
def test_expression_malformed(body: bytes, operation: Operation) -> None:
    """Structural problems are reported as MALFORMED_STRUCTURE."""
    result = ExpressionEvaluator.evaluate(body, operation)
    assert result.status is Status.MALFORMED_STRUCTURE
    assert result.result is None


@pytest.mark.parametrize("body,operation", [
    (b"5 + 3", Operation.SUBTRACT),
    (b"5 * 3", Operation.DIVIDE),
    (b"5 / 3", Operation.ADD),
    (b"5 - 3", Operation.ROSTER_AVERAGE),
])
def test_expression_operator_mismatch(body: bytes, operation: Operation) -> None:
    """A valid operator differing from the declared one is OPERATOR_MISMATCH."""
    result = ExpressionEvaluator.evaluate(body, operation)
    assert result.status is Status.OPERATOR_MISMATCH


def test_expression_division_by_zero() -> None:
    """Dividing by zero is its own failure, never a silent zero."""
    result = ExpressionEvaluator.evaluate(b"5 / 0", Operation.DIVIDE)
    assert result.status is Status.DIVISION_BY_ZERO
    assert result.result is None


def test_expression_zero_dividend() -> None:
    """A zero left operand divides normally."""
    result = ExpressionEvaluator.evaluate(b"0 / 5", Operation.DIVIDE)
    assert result.status is Status.OK
    assert result.result == 0.0


def test_expression_declared_length() -> None:
    """Only the declared number of bytes is read."""
    result = ExpressionEvaluator.evaluate(b"12 + 7 trailing garbage", Operation.ADD, length=6)
    assert result.result == 19.0


def test_expression_length_out_of_range() -> None:
    """A declared length larger than the buffer is rejected."""
    with pytest.raises(ValueError):
        ExpressionEvaluator.evaluate(b"1 + 1", Operation.ADD, length=10)


def test_expression_scan_state() -> None:
    """scan fills named operands and switches side after the operator."""
    state, status = ExpressionEvaluator.scan("123 * 45", Operation.MULTIPLY)
    assert status is Status.OK
    assert state.left == 123
    assert state.right == 45
    assert state.operator is Operation.MULTIPLY
    assert state.operator_count == 1
    assert state.side is Side.RIGHT


def test_expression_idempotent() -> None:
    """Evaluating the same buffer repeatedly always gives the same result."""
    buffer = bytearray(b"6 * 7")
    results = {ExpressionEvaluator.evaluate(buffer, Operation.MULTIPLY).result for _ in range(5)}
    assert results == {42.0}


@pytest.mark.parametrize("body,expected", [
    (b"90,3,80,3,-1", 127.5),
    (b" 90 , 3 , 80 , 3 , -1 ", 127.5),  # whitespace is insignificant
    (b"90,3,-1", 135.0),
    (b"-1", 0.0),
    (b"90,3,-1,100,3", 135.0),  # anything after the terminator is ignored
    (b"100,2,50,1", 50.0),  # no terminator: the open pair is never added
])
def test_roster_valid(body: bytes, expected: float) -> None:
    """Roster average is the weighted sum over the delimiting commas plus one."""
    result = RosterEvaluator.evaluate(body)
    assert result.status is Status.OK
    assert result.result == expected


@pytest.mark.parametrize("body", [
    b"90,3,8a,3,-1",
    b"90;3,-1",
    b"90,3,-2",  # '-' not followed by '1'
    b"90,3,+1",
])
def test_roster_malformed(body: bytes) -> None:
    """Illegal characters before the terminator are MALFORMED_STRUCTURE."""
    result = RosterEvaluator.evaluate(body)
    assert result.status is Status.MALFORMED_STRUCTURE
    assert result.result is None


def test_roster_scan_state() -> None:
    """scan accumulates the weighted and maximum-possible sums."""
    state, status = RosterEvaluator.scan("90,3,80,3,-1")
    assert status is Status.OK
    assert state.weighted_sum == 510
    assert state.max_possible == 600
    assert state.commas == 3
    assert state.mark == 0 and state.hours == 0


def test_roster_declared_length() -> None:
    """Only the declared number of bytes is read."""
    result = RosterEvaluator.evaluate(b"90,3,-1xyz", length=7)
    assert result.result == 135.0


def test_roster_idempotent() -> None:
    """Evaluating the same roster repeatedly always gives the same result."""
    results = {RosterEvaluator.evaluate(b"90,3,80,3,-1").result for _ in range(5)}
    assert results == {127.5}


@pytest.mark.parametrize("body,operation", [
    (b"9" * 400 + b" * " + b"9" * 400, Operation.MULTIPLY),
    (b"9" * 400 + b" + 1", Operation.ADD),
])
def test_expression_result_too_large(body: bytes, operation: Operation) -> None:
    """Results that do not fit a float are reported, never raised."""
    result = ExpressionEvaluator.evaluate(body, operation)
    assert result.status is Status.MALFORMED_STRUCTURE


def test_roster_result_too_large() -> None:
    """A weighted sum too large for a float is reported, never raised."""
    result = RosterEvaluator.evaluate(b"9" * 400 + b",1,-1")
    assert result.status is Status.MALFORMED_STRUCTURE


@pytest.mark.parametrize("body", [b"5\xa0+ 3", b"5 +\x853", b"5\x1c+3"])
def test_expression_non_ascii_whitespace(body: bytes) -> None:
    """Only ASCII whitespace is skipped; other separators count as operators."""
    result = ExpressionEvaluator.evaluate(body, Operation.ADD)
    assert result.status is Status.MALFORMED_STRUCTURE


@pytest.mark.parametrize("body", [b"90,\xa03,-1", b"90,3,\x85-1", b"90\x1f,3,-1"])
def test_roster_non_ascii_whitespace(body: bytes) -> None:
    """Non-ASCII whitespace in a roster is an illegal character."""
    result = RosterEvaluator.evaluate(body)
    assert result.status is Status.MALFORMED_STRUCTURE


def test_roster_state_close_list() -> None:
    """close_list uncounts a comma only when it directly precedes the terminator."""
    state, _ = RosterEvaluator.scan("90,3,-1")
    assert state.commas == 1
    assert not state.after_comma

    state, _ = RosterEvaluator.scan("90,3 -1")
    assert state.commas == 1
    assert state.current.value == "hours"
