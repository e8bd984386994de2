"""데이터 모델 테스트"""
import pytest
from pydantic import ValidationError

from src.models.common import Page, Pagination, parse_sort
from src.models.income import DistributionCreate, Fee
from src.models.property import PropertyCreate, PropertyType
from src.models.share import PurchaseRequest
from src.models.user import ConnectWalletRequest, RegisterRequest
from src.utils.wei import average_wei, percentage_of, ratio_percent, to_wei


class TestWei:
    """wei 금액 처리 테스트"""

    def test_to_wei_accepts_int_and_string(self):
        assert to_wei(5) == 5
        assert to_wei("1000000000000000000000000") == 10**24
        assert to_wei(" 42 ") == 42

    @pytest.mark.parametrize("value", ["-1", "1.5", "abc", True])
    def test_to_wei_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            to_wei(value)

    def test_wei_field_serializes_as_string(self):
        request = PurchaseRequest(share_id=1, buyer="0xabc", amount=2, total_price="20000000000000000000")
        dumped = request.model_dump(by_alias=True, mode="json")

        assert request.total_price == 20 * 10**18
        assert dumped["totalPrice"] == "20000000000000000000"

    def test_arithmetic_helpers(self):
        assert percentage_of(1000, "2.5") == 25
        assert percentage_of(999, 10) == 99  # 버림
        assert ratio_percent(1, 3) == 33.33
        assert ratio_percent(5, 0) == 0.0
        assert average_wei(10, 3) == 3
        assert average_wei(10, 0) == 0


class TestApiModel:
    """camelCase 직렬화 테스트"""

    def test_property_create_from_camel_case(self):
        prop = PropertyCreate.model_validate({
            "propertyAddress": "서울시 강남구",
            "propertyType": "아파트",
            "squareMeters": 84.5,
            "appraisedValue": "1000",
            "latitude": 37.5,
            "longitude": 127.0,
            "ipfsDocumentURI": "ipfs://doc",
            "ownerAddress": "0x" + "a" * 40,
        })

        assert prop.property_type == PropertyType.APARTMENT
        assert prop.appraised_value == 1000
        assert prop.model_dump(by_alias=True)["ipfsDocumentURI"] == "ipfs://doc"

    def test_property_create_rejects_bad_owner_address(self):
        with pytest.raises(ValidationError):
            PropertyCreate(
                property_address="서울시",
                property_type=PropertyType.LAND,
                square_meters=10,
                appraised_value=1,
                latitude=0,
                longitude=0,
                ipfs_document_uri="ipfs://doc",
                owner_address="not-a-wallet",
            )

    def test_register_requires_valid_email(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="invalid", password="secret1", name="홍길동")

    def test_wallet_can_be_disconnected(self):
        assert ConnectWalletRequest(wallet_address=None).wallet_address is None
        with pytest.raises(ValidationError):
            ConnectWalletRequest(wallet_address="0x123")


class TestDistributionModels:
    """수익 분배 모델 테스트"""

    def _payload(self, **overrides):
        payload = {
            "incomeType": "rental",
            "totalAmount": "1000",
            "period": {"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T00:00:00Z"},
            "description": "1월 임대 수익",
            "distributionDate": "2024-02-01T00:00:00Z",
        }
        payload.update(overrides)
        return payload

    def test_period_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            DistributionCreate.model_validate(
                self._payload(period={"start": "2024-02-01T00:00:00Z", "end": "2024-01-01T00:00:00Z"})
            )

    def test_metadata_alias(self):
        request = DistributionCreate.model_validate(self._payload(metadata={"ipfsHash": "Qm1"}))
        assert request.meta == {"ipfsHash": "Qm1"}

    def test_fee_amount_and_percentage_exclusive(self):
        with pytest.raises(ValidationError):
            Fee(amount=10, percentage=5)
        assert Fee(percentage=2.5).percentage == 2.5


class TestPagination:
    """페이지네이션 테스트"""

    def test_pagination_build(self):
        pagination = Pagination.build(total=25, page=2, limit=10)
        assert pagination.total_pages == 3

    def test_page_build(self):
        page = Page[int].build([1, 2], total=12, page=2, limit=5)
        dumped = page.model_dump(by_alias=True)

        assert dumped["totalDocs"] == 12
        assert dumped["hasPrevPage"] is True
        assert dumped["hasNextPage"] is True
        assert dumped["prevPage"] == 1
        assert dumped["nextPage"] == 3

    def test_parse_sort(self):
        assert parse_sort("-valuationDate", "-createdAt") == ("valuation_date", True)
        assert parse_sort("createdAt", "-createdAt") == ("created_at", False)
        assert parse_sort("", "-createdAt") == ("created_at", True)
