"""부동산 토큰화 API 서버 엔트리포인트"""
import argparse

import uvicorn

from config.settings import get_settings
from src.utils.logger import get_logger

logger = get_logger(__name__)


def main():
    """메인 함수"""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="부동산 토큰화 API 서버")
    parser.add_argument("--host", default=settings.host, help="바인딩 호스트")
    parser.add_argument("--port", "-p", type=int, default=settings.port, help="포트")
    parser.add_argument("--reload", action="store_true", help="코드 변경 시 자동 재시작")

    args = parser.parse_args()

    logger.info("Starting API server", host=args.host, port=args.port, env=settings.env)
    uvicorn.run("src.api:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
