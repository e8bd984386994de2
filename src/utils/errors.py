"""API 에러 정의 및 핸들러"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.utils.logger import get_logger

logger = get_logger(__name__)


class ApiError(Exception):
    """상태 코드를 가진 API 에러"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __repr__(self) -> str:
        return f"ApiError({self.status_code}, {self.message!r})"


class BlockchainError(Exception):
    """체인 호출 실패

    retryable이 True이면 네트워크/타임아웃 계열로 재시도 대상이다.
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class TransientBlockchainError(BlockchainError):
    """재시도 가능한 체인 에러"""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            status_code=exc.status_code,
            error=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "요청 데이터가 올바르지 않습니다", "details": details},
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "서버 오류가 발생했습니다"})


def register_error_handlers(app: FastAPI) -> None:
    """앱에 에러 핸들러 등록"""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
