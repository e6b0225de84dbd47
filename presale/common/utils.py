"""
预售系统 — 工具函数

提供 UTC 时间处理和定点金额换算等通用工具。
"""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_DOWN, ROUND_UP, Decimal


def utc_now() -> datetime:
    """
    获取当前 UTC 时间
    
    Returns:
        带时区信息的 UTC datetime
    """
    return datetime.now(timezone.utc)


def to_utc_ms(dt: datetime) -> int:
    """将 datetime 转换为 UTC 毫秒时间戳"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def generate_deadline(minutes: int = 60) -> str:
    """
    生成报价截止时间
    
    Args:
        minutes: 距当前的分钟数
    
    Returns:
        ISO 格式时间（秒精度，以 Z 结尾）
    """
    deadline = utc_now() + timedelta(minutes=minutes)
    return deadline.strftime("%Y-%m-%dT%H:%M:%SZ")


def compute_deposit_amount(
    unit_price_usd: Decimal | str | float,
    asset_price_usd: Decimal | str | float,
    places: int = 8,
) -> str:
    """
    计算单张票据的支付数量
    
    向上取整，保证支付金额不低于票价。
    
    Args:
        unit_price_usd: 单张票据价格（USD）
        asset_price_usd: 支付资产价格（USD）
        places: 小数位数
    
    Returns:
        定点小数字符串，如 "2.00000000"
    """
    unit = Decimal(str(unit_price_usd))
    price = Decimal(str(asset_price_usd))
    if price <= 0:
        raise ValueError("支付资产价格必须大于 0")
    if unit <= 0:
        raise ValueError("票据价格必须大于 0")
    
    quantum = Decimal(1).scaleb(-places)
    return format((unit / price).quantize(quantum, rounding=ROUND_UP), "f")


def to_base_units(amount: Decimal | str | int | float, decimals: int) -> str:
    """
    将小数金额转换为最小单位
    
    截断超出精度的小数位，不做四舍五入。
    
    Args:
        amount: 金额，如 "1.5"
        decimals: 资产精度
    
    Returns:
        最小单位整数字符串，如 "1500000"
    """
    value = Decimal(str(amount).strip()).scaleb(decimals)
    return str(int(value.quantize(Decimal(1), rounding=ROUND_DOWN)))


def format_token_amount(amount: str | int, decimals: int = 9) -> str:
    """
    格式化代币数量
    
    整数部分带千分位，小数部分保留 4 位（截断）。
    无法解析时原样返回。
    """
    try:
        value = int(amount)
    except (TypeError, ValueError):
        return str(amount)
    
    divisor = 10 ** decimals
    whole, fraction = divmod(value, divisor)
    fraction_str = str(fraction).rjust(decimals, "0")[:4]
    return f"{whole:,}.{fraction_str}"
