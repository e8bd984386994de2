"""수익 분배 정산 계산 테스트"""
import pytest

from src.services.settlement import (
    SettlementError,
    Transfer,
    allocate,
    build_snapshot,
    compute_fee,
    validate_receivers,
)

OWNER = "0xowner"
ALICE = "0xalice"
BOB = "0xbob"


class TestBuildSnapshot:
    """소유권 스냅샷 테스트"""

    def test_tokenizer_holds_everything_without_transfers(self):
        assert build_snapshot(OWNER, 100, []) == {OWNER: 100}

    def test_transfers_applied_in_order(self):
        holdings = build_snapshot(
            OWNER,
            100,
            [Transfer(OWNER, ALICE, 30), Transfer(OWNER, BOB, 20), Transfer(ALICE, BOB, 10)],
        )

        assert holdings == {OWNER: 50, ALICE: 20, BOB: 30}
        assert sum(holdings.values()) == 100

    def test_fully_sold_holder_dropped(self):
        holdings = build_snapshot(OWNER, 10, [Transfer(OWNER, ALICE, 10)])
        assert holdings == {ALICE: 10}

    def test_overselling_rejected(self):
        with pytest.raises(SettlementError):
            build_snapshot(OWNER, 10, [Transfer(ALICE, BOB, 1)])


class TestComputeFee:
    def test_no_fee(self):
        assert compute_fee(1000, None) == 0
        assert compute_fee(1000, {}) == 0

    def test_amount_and_percentage(self):
        assert compute_fee(1000, {"amount": "15"}) == 15
        assert compute_fee(1000, {"percentage": 2.5}) == 25

    def test_fee_larger_than_total(self):
        with pytest.raises(SettlementError):
            compute_fee(10, {"amount": 11})


class TestAllocate:
    """지분 비례 배분 테스트"""

    def test_exact_split(self):
        allocations = allocate(1000, {OWNER: 50, ALICE: 30, BOB: 20})
        assert [(a.wallet_address, a.amount) for a in allocations] == [
            (OWNER, 500),
            (ALICE, 300),
            (BOB, 200),
        ]

    def test_largest_remainder_keeps_total(self):
        allocations = allocate(100, {OWNER: 1, ALICE: 1, BOB: 1})

        assert sum(a.amount for a in allocations) == 100
        assert sorted(a.amount for a in allocations) == [33, 33, 34]
        # 동률이면 먼저 나온 보유자에게 배정
        assert allocations[0].amount == 34

    def test_fee_deducted(self):
        allocations = allocate(1000, {OWNER: 3, ALICE: 1}, fee_amount=100)

        assert sum(a.amount for a in allocations) + 100 == 1000
        assert {a.wallet_address: a.amount for a in allocations} == {OWNER: 675, ALICE: 225}

    def test_large_wei_amounts_stay_exact(self):
        total = 10**30 + 7
        allocations = allocate(total, {OWNER: 2, ALICE: 1})
        assert sum(a.amount for a in allocations) == total

    def test_no_shares(self):
        with pytest.raises(SettlementError):
            allocate(100, {})


class TestValidateReceivers:
    def _receivers(self, *items):
        return [{"wallet_address": w, "shares": s, "amount": a} for w, s, a in items]

    def test_valid(self):
        validate_receivers(self._receivers((ALICE, 60, 590), (BOB, 40, 400)), 1000, 10, total_shares=100)

    def test_share_sum_mismatch(self):
        with pytest.raises(SettlementError):
            validate_receivers(self._receivers((ALICE, 60, 600), (BOB, 30, 400)), 1000, total_shares=100)

    def test_amount_sum_mismatch(self):
        with pytest.raises(SettlementError):
            validate_receivers(self._receivers((ALICE, 60, 600), (BOB, 40, 300)), 1000)

    def test_duplicate_wallet(self):
        with pytest.raises(SettlementError):
            validate_receivers(self._receivers((ALICE, 50, 500), (ALICE, 50, 500)), 1000)
