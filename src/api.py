"""FastAPI 기반 REST API"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from src.routes import routers
from src.services.blockchain import get_blockchain_service
from src.services.cache import get_cache_service
from src.services.database import get_database_service
from src.utils.errors import register_error_handlers
from src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리"""
    # 시작 시
    db = get_database_service()
    await db.create_tables()
    cache = await get_cache_service()
    blockchain = get_blockchain_service()
    logger.info("Application started", chain_available=blockchain.available)
    yield
    # 종료 시
    await blockchain.close()
    await cache.disconnect()
    await db.close()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="부동산 토큰화 플랫폼 백엔드",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    for router in routers:
        app.include_router(router)

    @app.get("/")
    async def root():
        return {"message": "부동산 토큰화 플랫폼 API 서버"}

    @app.get("/health")
    async def health_check():
        """헬스 체크"""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=get_settings().host, port=get_settings().port)
