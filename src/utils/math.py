import enum


class Rounding(enum.Enum):
    FLOOR = "floor"
    CEIL = "ceil"


def mul_div(x: int, y: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> int:
    if denominator == 0:
        raise ZeroDivisionError("mul_div by zero")
    result, remainder = divmod(x * y, denominator)
    if rounding is Rounding.CEIL and remainder:
        result += 1
    return result
