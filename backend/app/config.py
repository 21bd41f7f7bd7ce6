"""
应用配置
从环境变量 / .env 读取配置
"""
from datetime import timedelta, timezone
from decimal import Decimal
from functools import lru_cache

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotelops.db"
    DATABASE_ECHO: bool = False

    # 报表日：固定 UTC 偏移（分钟），日结与纯日期输入统一使用
    REPORTING_UTC_OFFSET_MINUTES: int = Field(default=0, ge=-14 * 60, le=14 * 60)

    # 货币最小单位的小数位数；金额列为 Numeric(_, 2)，不能超过 2
    CURRENCY_DECIMALS: int = Field(default=2, ge=0, le=2)

    # 入住前必须关联客人
    GUEST_REQUIRED_FOR_CHECKIN: bool = False

    # 日结列表默认条数
    DAILY_CLOSE_LIST_LIMIT: int = Field(default=30, ge=1)

    # 日志
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def reporting_timezone(self) -> timezone:
        return timezone(timedelta(minutes=self.REPORTING_UTC_OFFSET_MINUTES))

    @property
    def currency_quantum(self) -> Decimal:
        """货币最小单位，如 Decimal('0.01')"""
        return Decimal(1).scaleb(-self.CURRENCY_DECIMALS)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# 全局设置实例
settings = get_settings()
