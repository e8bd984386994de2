"""Wei 단위 금액 유틸리티

금액은 항상 정수(wei)로 계산하고, API 경계에서만 10진 문자열로 변환한다.
"""
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

WeiLike = Union[int, str, Decimal]


def to_wei(value: WeiLike) -> int:
    """정수 wei 값으로 변환 (음수, 소수 불가)"""
    if isinstance(value, bool):
        raise ValueError("wei 값은 정수여야 합니다")
    if isinstance(value, int):
        result = value
    else:
        try:
            decimal_value = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"wei 값이 올바르지 않습니다: {value!r}") from e
        if decimal_value != decimal_value.to_integral_value():
            raise ValueError(f"wei 값은 정수여야 합니다: {value!r}")
        result = int(decimal_value)
    if result < 0:
        raise ValueError(f"wei 값은 0 이상이어야 합니다: {value!r}")
    return result


def percentage_of(amount: int, percentage: Union[float, Decimal, str]) -> int:
    """금액의 백분율 (소수점 이하 버림)"""
    pct = Decimal(str(percentage))
    return int((Decimal(amount) * pct / Decimal(100)).to_integral_value(rounding=ROUND_DOWN))


def ratio_percent(numerator: WeiLike, denominator: WeiLike, places: int = 2) -> float:
    """numerator / denominator * 100 (분모가 0이면 0)"""
    denominator = Decimal(str(denominator))
    if denominator == 0:
        return 0.0
    result = Decimal(str(numerator)) / denominator * Decimal(100)
    return float(round(result, places))


def average_wei(total: int, count: int) -> int:
    """평균 단가 (소수점 이하 버림)"""
    if count <= 0:
        return 0
    return total // count
