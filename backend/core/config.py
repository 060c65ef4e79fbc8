"""
系统配置管理
统一管理所有配置项，支持环境变量覆盖
"""

import logging
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

# 获取backend目录的绝对路径
BACKEND_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """系统配置"""

    # 应用信息
    app_name: str = "LMS Admin Console"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # 跨域配置
    cors_origins: List[str] = ["*"]

    # LMS 后端接口配置
    lms_api_base_url: str = "http://localhost:5000/api/v1"
    lms_api_timeout: float = 30.0  # 秒，与前端客户端保持一致
    lms_api_token: Optional[str] = None  # 请求未携带 Authorization 时使用

    # 时间显示配置（datetime-local 输入框按此时区解释）
    display_utc_offset_hours: int = 0

    # 编辑向导会话
    wizard_session_ttl_minutes: int = 120  # 空闲超时后丢弃

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def lms_api_root(self) -> str:
        """去掉末尾斜杠的后端根地址"""
        return self.lms_api_base_url.rstrip("/")


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取配置单例
    支持运行时重新加载
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()

        if not _settings_instance.debug and not _settings_instance.lms_api_token:
            logging.getLogger("core.config").info(
                "未配置 LMS_API_TOKEN，后端请求将仅使用调用方的 Authorization 头"
            )
    return _settings_instance


def reload_settings():
    """
    重新加载配置
    已创建的向导会话不受影响
    """
    global _settings_instance
    _settings_instance = Settings()
    return _settings_instance
