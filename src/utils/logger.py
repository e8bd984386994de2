"""로깅 유틸리티"""
import logging
from typing import Any

import structlog

from config.settings import get_settings


def _renderer():
    if get_settings().env == "production":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer(colors=True)


def get_logger(name: str) -> structlog.BoundLogger:
    """구조화된 로거 반환 (운영 환경은 JSON 출력)"""
    settings = get_settings()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(name)


class WorkflowLogger:
    """워크플로우 전용 로거 (수익 분배, 평가 승인 등)"""

    def __init__(self, workflow: str, **context: Any):
        self.logger = get_logger(workflow).bind(workflow=workflow, **context)
        self.workflow = workflow

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, **kwargs)

    def step(self, step_name: str, **kwargs: Any) -> None:
        """워크플로우 단계 로깅"""
        self.logger.info(f"Step: {step_name}", **kwargs)

    def result(self, result_type: str, **kwargs: Any) -> None:
        """워크플로우 결과 로깅"""
        self.logger.info(f"Result: {result_type}", **kwargs)
