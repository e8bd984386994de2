"""수익 분배 정산 계산

모든 금액은 정수 wei로 계산한다.
- 소유권 스냅샷: 토큰화 시점의 전량 보유에서 완료된 거래를 순서대로 반영
- 배분: 보유 지분 비례, 나머지 wei는 최대 잔여법(largest remainder)으로 배정
- 불변식: sum(shares) == totalShares, sum(amount) + fee == totalAmount
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from src.utils.wei import percentage_of


class SettlementError(ValueError):
    """정산 불변식 위반"""


@dataclass(frozen=True)
class Transfer:
    seller: str
    buyer: str
    amount: int


@dataclass(frozen=True)
class Allocation:
    wallet_address: str
    shares: int
    amount: int


def build_snapshot(
    tokenizer: str,
    total_shares: int,
    transfers: Iterable[Transfer],
) -> dict[str, int]:
    """시점 기준 지분 보유 현황 계산"""
    holdings: dict[str, int] = {tokenizer: total_shares}
    for transfer in transfers:
        if transfer.amount <= 0:
            continue
        if holdings.get(transfer.seller, 0) < transfer.amount:
            raise SettlementError(
                f"보유 지분보다 많은 지분이 이전되었습니다: {transfer.seller}"
            )
        holdings[transfer.seller] -= transfer.amount
        holdings[transfer.buyer] = holdings.get(transfer.buyer, 0) + transfer.amount
    return {wallet: shares for wallet, shares in holdings.items() if shares > 0}


def compute_fee(total_amount: int, fee: Optional[dict]) -> int:
    """수수료 금액 (금액 지정 또는 백분율, 소수점 이하 버림)"""
    if not fee:
        return 0
    if fee.get("amount") is not None:
        amount = int(fee["amount"])
    elif fee.get("percentage") is not None:
        amount = percentage_of(total_amount, fee["percentage"])
    else:
        return 0
    if amount > total_amount:
        raise SettlementError("수수료가 총 분배 금액을 초과합니다")
    return amount


def allocate(
    total_amount: int,
    holdings: dict[str, int],
    fee_amount: int = 0,
) -> list[Allocation]:
    """지분 비례 배분"""
    total_shares = sum(holdings.values())
    if total_shares <= 0:
        raise SettlementError("분배할 지분이 없습니다")
    distributable = total_amount - fee_amount
    if distributable < 0:
        raise SettlementError("수수료가 총 분배 금액을 초과합니다")

    wallets = list(holdings)
    base = {w: distributable * holdings[w] // total_shares for w in wallets}
    remainders = {w: distributable * holdings[w] % total_shares for w in wallets}

    leftover = distributable - sum(base.values())
    # 잔여분이 큰 순서, 같으면 보유 지분이 큰 순서
    position = {w: i for i, w in enumerate(wallets)}
    order = sorted(wallets, key=lambda w: (-remainders[w], -holdings[w], position[w]))
    for wallet in order[:leftover]:
        base[wallet] += 1

    return [Allocation(w, holdings[w], base[w]) for w in wallets]


def validate_receivers(
    receivers: list[dict],
    total_amount: int,
    fee_amount: int = 0,
    total_shares: Optional[int] = None,
) -> None:
    """수령자 목록 불변식 검증"""
    wallets = [r["wallet_address"] for r in receivers]
    if len(set(wallets)) != len(wallets):
        raise SettlementError("중복된 수령자 지갑 주소가 있습니다")

    share_sum = sum(int(r["shares"]) for r in receivers)
    amount_sum = sum(int(r["amount"]) for r in receivers)

    if total_shares is not None and share_sum != total_shares:
        raise SettlementError(
            f"수령자 지분 합계({share_sum})가 총 지분({total_shares})과 일치하지 않습니다"
        )
    if amount_sum + fee_amount != total_amount:
        raise SettlementError(
            f"수령자 분배액 합계({amount_sum})와 수수료({fee_amount})의 합이 "
            f"총 분배 금액({total_amount})과 일치하지 않습니다"
        )
