# =============================================================================
# server/config.py
# =============================================================================
# 目的：
# 伺服器設定：從環境變數（以及 .env 檔）讀取，啟動指令的參數可再覆蓋。
#
#   A2A_SERVER_HOST        綁定的主機（預設 0.0.0.0）
#   A2A_SERVER_PORT        埠號（預設 5000）
#   A2A_SERVER_ENDPOINT    JSON-RPC 端點路徑（預設 /）
#   A2A_AGENT_NAME         AgentCard 名稱
#   A2A_AGENT_DESCRIPTION  AgentCard 描述
#   A2A_STREAM_BUFFER      每個串流訂閱者最多緩衝的事件數（預設 256）
#   A2A_LOG_LEVEL          日誌等級（預設 INFO）
# =============================================================================

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=5000, ge=1, le=65535)
    endpoint: str = "/"
    agent_name: str = "Python A2A Agent"
    agent_description: str = "A Python implementation of the A2A protocol"
    stream_buffer: int = Field(default=256, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, dotenv: bool = True) -> "ServerSettings":
        if dotenv:
            load_dotenv()
        source = os.environ if environ is None else environ

        values = {}
        for field, env_name in (
            ("host", "A2A_SERVER_HOST"),
            ("port", "A2A_SERVER_PORT"),
            ("endpoint", "A2A_SERVER_ENDPOINT"),
            ("agent_name", "A2A_AGENT_NAME"),
            ("agent_description", "A2A_AGENT_DESCRIPTION"),
            ("stream_buffer", "A2A_STREAM_BUFFER"),
            ("log_level", "A2A_LOG_LEVEL"),
        ):
            value = source.get(env_name)
            if value:
                values[field] = value
        # pydantic 會把字串轉成 int，並驗證範圍
        return cls(**values)

    def with_overrides(self, **overrides) -> "ServerSettings":
        """以非 None 的參數覆蓋設定（供 CLI 選項使用）。"""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return self.model_validate({**self.model_dump(), **changes})
