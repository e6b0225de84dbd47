"""
预售系统 — 结构化日志

JSON 格式日志输出，票据编号、阶段等字段放入 extra。
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# LogRecord 自带属性，不作为 extra 输出
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "extra_data",
}


class JSONFormatter(logging.Formatter):
    """JSON 格式日志格式化器"""
    
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        if record.pathname:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        
        # logger.info(..., extra={...}) 传入的字段
        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if hasattr(record, "extra_data"):
            extra.update(record.extra_data)
        if extra:
            log_data["extra"] = extra
        
        return json.dumps(log_data, ensure_ascii=False, default=str)


def _default_level() -> int:
    value = logging.getLevelName(os.environ.get("PRESALE_LOG_LEVEL", "INFO").upper())
    return value if isinstance(value, int) else logging.INFO


def get_logger(
    name: str,
    level: int | None = None,
    use_json: bool = True,
) -> logging.Logger:
    """
    获取结构化日志记录器
    
    Args:
        name: 日志记录器名称
        level: 日志级别，默认读取 PRESALE_LOG_LEVEL
        use_json: 是否使用 JSON 格式
    
    Returns:
        配置好的 Logger 实例
    """
    logger = logging.getLogger(name)
    
    # 避免重复添加 handler
    if logger.handlers:
        return logger
    
    level = level if level is not None else _default_level()
    logger.setLevel(level)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    
    logger.addHandler(handler)
    logger.propagate = False
    
    return logger


class TicketLoggerAdapter(logging.LoggerAdapter):
    """自动附带会话和票据上下文的日志适配器"""
    
    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})
        extra["extra_data"] = dict(self.extra or {})
        kwargs["extra"] = extra
        return msg, kwargs
