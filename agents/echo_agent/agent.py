# =============================================================================
# agents/echo_agent/agent.py
# =============================================================================
# 🎯 目的：
# 一個最簡單的參考代理：把使用者的文字原樣（或轉為大寫）回覆。
# 用來示範 TaskHandler 如何接上 A2A 伺服器，不依賴任何 LLM。
# =============================================================================


class EchoAgent:
    # 此代理只支援純文字輸入/輸出
    SUPPORTED_CONTENT_TYPES = ["text", "text/plain"]

    def __init__(self, shout: bool = False, prefix: str = "Echo: "):
        self.shout = shout
        self.prefix = prefix

    def invoke(self, query: str, session_id: str | None = None) -> str:
        """回傳回覆文字；session_id 只為了與其他代理的介面一致。"""
        text = query.upper() if self.shout else query
        return f"{self.prefix}{text}"
