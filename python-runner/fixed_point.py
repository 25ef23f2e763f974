#!/usr/bin/env python3
"""
Fixed-Point Math

Multiply-then-divide with an explicit rounding direction. Python ints are
arbitrary precision, so the intermediate product never overflows; only the
final result is checked against the uint256 range.
"""

from errors import ArithmeticOverflow

Q96 = 1 << 96
Q192 = 1 << 192

MAX_UINT256 = (1 << 256) - 1


def _check_operands(a: int, b: int, denominator: int) -> None:
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError("mul_div operands must be unsigned")
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")


def _check_result(result: int) -> int:
    if result > MAX_UINT256:
        raise ArithmeticOverflow(f"mul_div result {result} exceeds uint256")
    return result


def mul_div_round_down(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator)."""
    _check_operands(a, b, denominator)
    return _check_result((a * b) // denominator)


def mul_div_round_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator)."""
    _check_operands(a, b, denominator)
    quotient, remainder = divmod(a * b, denominator)
    if remainder:
        quotient += 1
    return _check_result(quotient)
