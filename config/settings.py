"""애플리케이션 설정"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """환경 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Real Estate Tokenization API"
    env: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 5000

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/real_estate"
    redis_url: str = "redis://localhost:6379"
    analytics_cache_ttl: int = 300  # seconds

    # Auth
    jwt_secret: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7

    # Chain
    avalanche_rpc_url: str = "https://api.avax-test.network/ext/bc/C/rpc"
    chain_id: int = 43113  # Fuji
    private_key: str = ""
    admin_wallet: str = ""
    gas_limit: int = 3_000_000
    gas_price: int = 25_000_000_000  # 25 Gwei
    confirmations: int = 2
    block_time: float = 2.0
    chain_request_timeout: int = 30
    receipt_timeout: int = 120

    # Contracts
    property_valuation_contract: str = ""
    income_distribution_contract: str = ""
    real_estate_nft_contract: str = ""
    fractional_ownership_contract: str = ""

    # Chain retry
    chain_max_retries: int = 3
    chain_retry_initial_delay: float = 1.0
    chain_retry_max_delay: float = 10.0


@lru_cache
def get_settings() -> Settings:
    """캐시된 설정 반환"""
    return Settings()
