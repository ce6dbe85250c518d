"""Route a request to the evaluator matching its declared kind."""
from arithmetic_gpa_server.common.evaluator import ExpressionEvaluator, RosterEvaluator
from arithmetic_gpa_server.common.operations import (
    ARITHMETIC_OPERATIONS,
    Operation,
    OperationRequest,
    OperationResult,
    Status,
)


def dispatch(request: OperationRequest) -> OperationResult:
    """
    Evaluate a request with the evaluator its kind selects.

    Terminate requests evaluate to 0.0; stopping is left to the server.

    :param OperationRequest request: Decoded request

    :return: Evaluation result
    :rtype: OperationResult
    """
    if request.kind in ARITHMETIC_OPERATIONS:
        return ExpressionEvaluator.evaluate(request.body, request.kind)
    if request.kind is Operation.ROSTER_AVERAGE:
        return RosterEvaluator.evaluate(request.body)
    if request.kind is Operation.TERMINATE:
        return OperationResult.ok(0.0)
    return OperationResult.failed(Status.MALFORMED_STRUCTURE)
