"""
预售系统 — 配置加载

支持 YAML 配置文件和环境变量替换。
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .logging import get_logger
from .models import AppFee, LaunchInfo

logger = get_logger(__name__)


class BridgeConfig(BaseModel):
    """1Click 跨链兑换配置"""
    
    base_url: str = Field(default="https://1click.chaindefuser.com/v0")
    api_token: str = Field(default="")
    timeout_seconds: float = Field(default=30.0, gt=0)
    slippage_tolerance: int = Field(default=100, ge=0, le=10000)
    quote_waiting_time_ms: int = Field(default=3000, ge=0)
    deadline_minutes: int = Field(default=60, ge=1)
    referral: str = Field(default="referral")


class TEEConfig(BaseModel):
    """TEE 证明服务配置"""
    
    endpoint: str = Field(default="http://localhost:3000")
    timeout_seconds: float = Field(default=120.0, gt=0)


class PollerConfig(BaseModel):
    """状态轮询配置"""
    
    interval_seconds: float = Field(default=10.0, gt=0)
    max_interval_seconds: float = Field(default=60.0, gt=0)
    watch_timeout_seconds: float = Field(default=3600.0, gt=0)
    max_proof_attempts: int = Field(default=3, ge=1)


class PurchaseConfig(BaseModel):
    """购买配置"""
    
    deposit_decimals: int = Field(default=8, ge=0, le=18)
    app_fees: list[AppFee] = Field(default_factory=list)


class StorageConfig(BaseModel):
    """本地凭证存储配置"""
    
    data_dir: str = Field(default="data/tickets")


class Settings(BaseModel):
    """系统配置"""
    
    env: str = Field(default="development")
    debug: bool = Field(default=False)
    
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    tee: TEEConfig = Field(default_factory=TEEConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    purchase: PurchaseConfig = Field(default_factory=PurchaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    
    # 当前发售（API 服务启动时使用）
    launch: LaunchInfo | None = None


def _substitute_env_vars(value: Any) -> Any:
    """替换环境变量占位符 ${VAR_NAME}"""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        
        return re.sub(pattern, replacer, value)
    
    if isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    
    if isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    
    return value


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """
    加载 YAML 配置文件
    
    Args:
        path: 配置文件路径
    
    Returns:
        配置字典，文件不存在时为空
    """
    path = Path(path)
    
    if not path.exists():
        logger.warning(f"配置文件不存在: {path}")
        return {}
    
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    
    return _substitute_env_vars(data)


def load_settings(config_dir: str | Path | None = None) -> Settings:
    """
    加载系统配置
    
    优先级：环境变量 > config/config.yaml > 默认值
    
    Args:
        config_dir: 配置目录路径，默认读取 PRESALE_CONFIG_DIR
    
    Returns:
        Settings 实例
    """
    config_data: dict[str, Any] = {}
    
    config_dir = config_dir or os.environ.get("PRESALE_CONFIG_DIR")
    if config_dir:
        main_config = Path(config_dir) / "config.yaml"
        if main_config.exists():
            config_data.update(load_yaml_config(main_config))
    
    # 常用环境变量覆盖
    env_overrides = {
        ("bridge", "api_token"): os.environ.get("ONECLICK_API_TOKEN"),
        ("tee", "endpoint"): os.environ.get("TEE_ENDPOINT"),
        ("storage", "data_dir"): os.environ.get("PRESALE_DATA_DIR"),
    }
    for (section, key), value in env_overrides.items():
        if value:
            config_data.setdefault(section, {})[key] = value
    
    return Settings(**config_data)


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
