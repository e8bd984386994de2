"""블록체인 서비스 (Avalanche C-Chain 스마트 컨트랙트 클라이언트)

PropertyValuation, IncomeDistribution, RealEstateNFT, FractionalOwnership
네 개의 컨트랙트를 다룬다. 상태를 바꾸는 호출은 모두
nonce -> estimate_gas(x1.2) -> sign -> send -> receipt(+confirmations) -> event 순서로 처리한다.
"""
import asyncio
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiohttp
from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError
from web3.logs import DISCARD

from config.settings import Settings, get_settings
from src.models.income import ChainDistribution, ChainReceiver
from src.models.valuation import ChainValuation
from src.utils.errors import BlockchainError, TransientBlockchainError
from src.utils.logger import get_logger
from src.utils.retry import RetryPolicy, retry_async

logger = get_logger(__name__)

ABI_DIR = Path(__file__).parent / "abi"

GAS_MULTIPLIER = 1.2

TRANSIENT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    TimeExhausted,
)

# 컨트랙트 enum 순서
METHODOLOGIES = [
    "comparative_market_analysis",
    "income_approach",
    "cost_approach",
    "automated_valuation",
    "hybrid",
]
INCOME_TYPES = ["rental", "operational", "sale", "other"]
VALUATION_STATUSES = ["pending", "approved", "rejected", "recorded"]
DISTRIBUTION_STATUSES = ["pending", "processing", "completed", "failed", "canceled"]

CONTRACTS = {
    "property_valuation": "PropertyValuation",
    "income_distribution": "IncomeDistribution",
    "real_estate_nft": "RealEstateNFT",
    "fractional_ownership": "FractionalOwnership",
}


def methodology_id(methodology: str) -> int:
    """평가 방법론 -> 컨트랙트 ID (알 수 없으면 0)"""
    try:
        return METHODOLOGIES.index(methodology)
    except ValueError:
        return 0


def income_type_id(income_type: str) -> int:
    """수익 유형 -> 컨트랙트 ID (알 수 없으면 other)"""
    try:
        return INCOME_TYPES.index(income_type)
    except ValueError:
        return INCOME_TYPES.index("other")


def _lookup(names: list[str], index: int) -> str:
    return names[index] if 0 <= index < len(names) else "unknown"


def map_methodology(index: int) -> str:
    return _lookup(METHODOLOGIES, index)


def map_income_type(index: int) -> str:
    return _lookup(INCOME_TYPES, index)


def map_valuation_status(index: int) -> str:
    return _lookup(VALUATION_STATUSES, index)


def map_distribution_status(index: int) -> str:
    return _lookup(DISTRIBUTION_STATUSES, index)


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """지갑 주소 비교 (대소문자 무시)"""
    return bool(a) and bool(b) and a.lower() == b.lower()


def load_abi(contract_name: str) -> list[dict]:
    """패키지에 포함된 ABI 로드"""
    with open(ABI_DIR / f"{contract_name}.json", encoding="utf-8") as f:
        return json.load(f)["abi"]


def to_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass
class TxResult:
    """확정된 트랜잭션 결과"""

    transaction_hash: str
    block_number: int
    event: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChainPropertyInfo:
    property_address: str
    square_meters: int
    property_type: str
    appraised_value: int
    ipfs_document_uri: str
    latitude: str
    longitude: str
    owner: str
    is_tokenized: bool


@dataclass
class ChainShareInfo:
    property_id: int
    total_shares: int
    available_shares: int
    price_per_share: int
    property_address: str
    tokenizer: str
    active: bool


class BlockchainService:
    """스마트 컨트랙트 클라이언트"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.web3 = AsyncWeb3(
            AsyncHTTPProvider(
                self.settings.avalanche_rpc_url,
                request_kwargs={
                    "timeout": aiohttp.ClientTimeout(total=self.settings.chain_request_timeout)
                },
            )
        )

        self.account = None
        if self.settings.private_key:
            try:
                self.account = Account.from_key(self.settings.private_key)
            except ValueError as e:
                logger.error("Invalid operator key", error=str(e))

        self.contracts = {}
        for key, contract_name in CONTRACTS.items():
            address = getattr(self.settings, f"{key}_contract")
            if not address:
                continue
            self.contracts[key] = self.web3.eth.contract(
                address=AsyncWeb3.to_checksum_address(address),
                abi=load_abi(contract_name),
            )

        logger.info(
            "Blockchain service initialized",
            rpc_url=self.settings.avalanche_rpc_url,
            contracts=sorted(self.contracts),
            signer=self.account.address if self.account else None,
        )

    @property
    def available(self) -> bool:
        """서명 키와 모든 컨트랙트 주소가 설정되었는지"""
        return self.account is not None and len(self.contracts) == len(CONTRACTS)

    def _contract(self, key: str):
        contract = self.contracts.get(key)
        if contract is None:
            raise BlockchainError(f"{CONTRACTS[key]} 컨트랙트 주소가 설정되지 않았습니다")
        return contract

    # ------------------------------------------------------------------
    # 저수준 호출
    # ------------------------------------------------------------------

    async def _call(self, key: str, function_name: str, *args: Any) -> Any:
        """읽기 전용 컨트랙트 호출 (일시적 오류만 재시도)"""
        contract = self._contract(key)

        async def call() -> Any:
            try:
                return await getattr(contract.functions, function_name)(*args).call()
            except TRANSIENT_ERRORS as e:
                raise TransientBlockchainError(f"{function_name} 호출 실패: {e}") from e
            except (ContractLogicError, Web3RPCError, ValueError) as e:
                raise BlockchainError(f"{function_name} 호출 실패: {e}") from e

        call.__name__ = function_name
        return await retry_async(call, self.retry_policy, exceptions=(BlockchainError,))

    async def _build_and_sign(self, contract_fn, value: int):
        """nonce 조회, 가스 추정(20% 여유), 트랜잭션 서명"""
        try:
            nonce = await self.web3.eth.get_transaction_count(self.account.address, "pending")
            gas_estimate = await contract_fn.estimate_gas(
                {"from": self.account.address, "value": value}
            )
            gas_price = self.settings.gas_price or await self.web3.eth.gas_price
            tx = await contract_fn.build_transaction(
                {
                    "from": self.account.address,
                    "nonce": nonce,
                    "value": value,
                    "gas": min(math.ceil(gas_estimate * GAS_MULTIPLIER), self.settings.gas_limit),
                    "gasPrice": gas_price,
                    "chainId": self.settings.chain_id,
                }
            )
        except TRANSIENT_ERRORS as e:
            raise TransientBlockchainError(f"트랜잭션 준비 실패: {e}") from e
        except (ContractLogicError, Web3RPCError, ValueError) as e:
            raise BlockchainError(f"트랜잭션 준비 실패: {e}") from e
        return self.account.sign_transaction(tx)

    async def _send(self, signed) -> HexBytes:
        """서명된 트랜잭션 전송 (같은 raw tx 재전송은 안전)"""
        try:
            return await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except TRANSIENT_ERRORS as e:
            raise TransientBlockchainError(f"트랜잭션 전송 실패: {e}") from e
        except (Web3RPCError, ValueError) as e:
            if "already known" in str(e):
                return HexBytes(signed.hash)
            raise BlockchainError(f"트랜잭션 전송 실패: {e}") from e

    async def _wait_for_receipt(self, tx_hash: HexBytes):
        """영수증 및 확인 블록 대기"""
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.settings.receipt_timeout,
                poll_latency=self.settings.block_time,
            )
            target_block = receipt["blockNumber"] + self.settings.confirmations - 1
            while await self.web3.eth.block_number < target_block:
                await asyncio.sleep(self.settings.block_time)
        except TRANSIENT_ERRORS as e:
            raise TransientBlockchainError(f"트랜잭션 확인 대기 실패: {e}") from e
        if receipt["status"] != 1:
            raise BlockchainError(f"트랜잭션이 실패했습니다: {HexBytes(tx_hash).to_0x_hex()}")
        return receipt

    async def _transact(
        self,
        key: str,
        function_name: str,
        *args: Any,
        value: int = 0,
        event_name: Optional[str] = None,
    ) -> TxResult:
        """상태 변경 트랜잭션 실행

        전송 전 단계는 통째로 재시도하고, 전송 이후에는 같은 해시로 영수증만 다시 기다린다.
        """
        if self.account is None:
            raise BlockchainError("블록체인 서명 키가 설정되지 않았습니다")
        contract = self._contract(key)
        contract_fn = getattr(contract.functions, function_name)(*args)
        policy = self.retry_policy
        retry_on = (BlockchainError,)

        async def build() -> Any:
            return await self._build_and_sign(contract_fn, value)

        async def send() -> HexBytes:
            return await self._send(signed)

        async def wait() -> Any:
            return await self._wait_for_receipt(tx_hash)

        build.__name__ = send.__name__ = wait.__name__ = function_name

        signed = await retry_async(build, policy, exceptions=retry_on)
        tx_hash = await retry_async(send, policy, exceptions=retry_on)
        receipt = await retry_async(wait, policy, exceptions=retry_on)

        result = TxResult(
            transaction_hash=HexBytes(receipt["transactionHash"]).to_0x_hex(),
            block_number=receipt["blockNumber"],
        )
        if event_name:
            events = getattr(contract.events, event_name)().process_receipt(receipt, errors=DISCARD)
            if not events:
                raise BlockchainError(f"{event_name} 이벤트를 찾을 수 없습니다")
            result.event = dict(events[0]["args"])

        logger.info(
            "Transaction confirmed",
            contract=CONTRACTS[key],
            function=function_name,
            transaction_hash=result.transaction_hash,
            block_number=result.block_number,
        )
        return result

    # ------------------------------------------------------------------
    # PropertyValuation
    # ------------------------------------------------------------------

    async def record_property_valuation(
        self,
        token_id: int,
        current_value: int,
        methodology: str,
        metadata_uri: str,
    ) -> TxResult:
        """부동산 평가 기록 (event: valuationId)"""
        return await self._transact(
            "property_valuation",
            "recordValuation",
            token_id,
            current_value,
            methodology_id(methodology),
            metadata_uri,
            event_name="ValuationRecorded",
        )

    async def approve_property_valuation(self, valuation_id: int, approved: bool) -> TxResult:
        """부동산 평가 승인/거부"""
        return await self._transact(
            "property_valuation",
            "approveValuation",
            valuation_id,
            approved,
        )

    async def get_property_valuation(self, valuation_id: int) -> ChainValuation:
        info = await self._call("property_valuation", "getValuation", valuation_id)
        return ChainValuation(
            token_id=info[0],
            valuation_id=info[1],
            previous_value=info[2],
            current_value=info[3],
            change_percentage=info[4],
            valuation_date=from_timestamp(info[5]),
            appraiser=info[6],
            approver=info[7],
            status=map_valuation_status(info[8]),
            methodology=map_methodology(info[9]),
            metadata_uri=info[10],
        )

    async def get_latest_valuation_id(self, token_id: int) -> int:
        return await self._call("property_valuation", "getLatestValuationId", token_id)

    async def get_valuation_history(self, token_id: int) -> list[int]:
        return list(await self._call("property_valuation", "getValuationHistory", token_id))

    # ------------------------------------------------------------------
    # IncomeDistribution
    # ------------------------------------------------------------------

    async def create_income_distribution(
        self,
        property_token_id: int,
        total_amount: int,
        income_type: str,
        metadata_uri: str,
        period_start: datetime,
        period_end: datetime,
    ) -> TxResult:
        """수익 분배 생성 (event: distributionId)"""
        return await self._transact(
            "income_distribution",
            "createDistribution",
            property_token_id,
            total_amount,
            income_type_id(income_type),
            metadata_uri,
            to_timestamp(period_start),
            to_timestamp(period_end),
            event_name="DistributionCreated",
        )

    async def deposit_funds(self, distribution_id: int, amount: int) -> TxResult:
        """분배 자금 입금 (payable)"""
        return await self._transact(
            "income_distribution",
            "depositFunds",
            distribution_id,
            value=amount,
            event_name="FundsDeposited",
        )

    async def execute_income_distribution(self, distribution_id: int) -> TxResult:
        return await self._transact(
            "income_distribution",
            "executeDistribution",
            distribution_id,
            event_name="DistributionExecuted",
        )

    async def cancel_income_distribution(self, distribution_id: int) -> TxResult:
        return await self._transact(
            "income_distribution",
            "cancelDistribution",
            distribution_id,
            event_name="DistributionCancelled",
        )

    async def get_income_distribution(self, distribution_id: int) -> ChainDistribution:
        info = await self._call("income_distribution", "getDistribution", distribution_id)
        return ChainDistribution(
            distribution_id=info[0],
            property_token_id=info[1],
            total_amount=info[2],
            distribution_date=from_timestamp(info[3]),
            income_type=map_income_type(info[4]),
            status=map_distribution_status(info[5]),
            distributor=info[6],
            metadata_uri=info[7],
            period_start=from_timestamp(info[8]),
            period_end=from_timestamp(info[9]),
            fee_amount=info[10],
            fee_recipient=info[11],
        )

    async def get_income_distribution_receivers(self, distribution_id: int) -> list[ChainReceiver]:
        receivers = await self._call("income_distribution", "getReceivers", distribution_id)
        return [
            ChainReceiver(
                wallet_address=r[0],
                shares=r[1],
                amount=r[2],
                status=map_distribution_status(r[3]),
            )
            for r in receivers
        ]

    async def get_income_distribution_history(self, property_token_id: int) -> list[int]:
        return list(
            await self._call("income_distribution", "getDistributionHistory", property_token_id)
        )

    # ------------------------------------------------------------------
    # RealEstateNFT / FractionalOwnership
    # ------------------------------------------------------------------

    async def mint_property(
        self,
        owner_address: str,
        property_address: str,
        square_meters: float,
        property_type: str,
        appraised_value: int,
        ipfs_document_uri: str,
        latitude: float,
        longitude: float,
    ) -> TxResult:
        """부동산 NFT 발행 (event: tokenId)"""
        return await self._transact(
            "real_estate_nft",
            "mintProperty",
            AsyncWeb3.to_checksum_address(owner_address),
            property_address,
            int(round(square_meters)),
            property_type,
            appraised_value,
            ipfs_document_uri,
            str(latitude),
            str(longitude),
            event_name="PropertyMinted",
        )

    async def get_property_info(self, token_id: int) -> ChainPropertyInfo:
        info = await self._call("real_estate_nft", "getPropertyInfo", token_id)
        return ChainPropertyInfo(*info)

    async def get_share_info(self, share_id: int) -> ChainShareInfo:
        info = await self._call("fractional_ownership", "getShareInfo", share_id)
        return ChainShareInfo(*info)

    async def close(self) -> None:
        await self.web3.provider.disconnect()


# 싱글톤 인스턴스
_blockchain_service: Optional[BlockchainService] = None


def get_blockchain_service() -> BlockchainService:
    """블록체인 서비스 싱글톤 반환"""
    global _blockchain_service
    if _blockchain_service is None:
        _blockchain_service = BlockchainService()
    return _blockchain_service
