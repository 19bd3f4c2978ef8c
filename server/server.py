# =============================================================================
# server.py
# =============================================================================
# 📌 目的：
# 此檔案定義 A2A（代理對代理）伺服器的 HTTP 綁定。
# 支援：
# - 通過 POST（預設 "/"）接收所有 JSON-RPC 任務請求
# - tasks/sendSubscribe 與 tasks/resubscribe 以 Server-Sent Events 串流回應
# - 讓客戶端通過 GET（"/.well-known/agent.json"）發現代理的詳細資訊
#
# 協議錯誤一律放在 JSON-RPC 回應信封中，HTTP 狀態碼維持 200。
# =============================================================================


# -----------------------------------------------------------------------------
# 🧱 必要匯入
# -----------------------------------------------------------------------------

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

# 🌐 FastAPI 是 Starlette 的超集，支援自動產生 Swagger UI
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

# 📦 匯入自訂的模型與邏輯
from models.agent import AgentCard                      # 描述代理的身份與技能
from models.json_rpc import InternalError, JSONRPCResponse
from models.request import SendTaskStreamingResponse
from server.dispatcher import A2ADispatcher, DispatchResult, is_stream
from server.task_manager import TaskManager

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# 🚀 A2AServer 類別：核心伺服器邏輯
# -----------------------------------------------------------------------------
class A2AServer:
    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 5000,
        endpoint: str = "/",
        agent_card: AgentCard | None = None,
        task_manager: TaskManager | None = None,
    ):
        """
        🔧 A2AServer 建構子

        參數：
            host: 綁定伺服器的 IP 位址（預設為所有介面）
            port: 監聽的埠號（預設為 5000）
            endpoint: JSON-RPC 請求的路徑（預設為 "/"）
            agent_card: 描述代理的中繼資料（名稱、技能、能力）
            task_manager: 處理任務生命週期的 TaskManager
        """
        self.host = host
        self.port = port
        self.endpoint = endpoint
        self.agent_card = agent_card
        self.task_manager = task_manager
        self.dispatcher = A2ADispatcher(task_manager) if task_manager is not None else None

        # 🌐 FastAPI app 初始化；關閉時釋放 task manager 持有的資源
        self.app = FastAPI(lifespan=self._lifespan)

        # 用 decorator 註冊 handler
        self._register_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        if self.task_manager is not None:
            await self.task_manager.aclose()
            logger.info("Task manager closed")

    def _register_routes(self):
        app = self.app
        server = self  # 為了在 handler 裡存取 self

        @app.post(self.endpoint)
        async def handle_request(request: Request):
            """
            處理 JSON-RPC 任務請求。
            - 讀取原始 body，交由 dispatcher 解碼與分派
            - 一般方法回傳 JSON，串流方法回傳 SSE
            """
            body = await request.body()
            try:
                result = await server.dispatcher.handle(body)
            except Exception:
                logger.exception("Unhandled error while handling request")
                result = JSONRPCResponse(id=None, error=InternalError())
            return server._create_response(result)

        @app.get("/.well-known/agent.json")
        async def get_agent_card():
            """
            代理發現端點（GET /.well-known/agent.json）
            回傳：代理中繼資料（字典格式）
            """
            return JSONResponse(server.agent_card.model_dump(mode="json", exclude_none=True))

    # -----------------------------------------------------------------------------
    # 🧾 _create_response(): 將分派結果轉為 HTTP 回應
    # -----------------------------------------------------------------------------
    def _create_response(self, result: DispatchResult):
        if is_stream(result):
            return EventSourceResponse(self._sse_events(result))
        return JSONResponse(content=result.to_wire())

    async def _sse_events(self, stream: AsyncIterator[SendTaskStreamingResponse]):
        # 每個事件一行 data；用戶端斷線時 sse-starlette 會取消此 generator，
        # stream 的 finally 區塊會負責取消訂閱
        try:
            async for item in stream:
                yield {"data": json.dumps(item.to_wire())}
        finally:
            await stream.aclose()

    # -----------------------------------------------------------------------------
    # ▶️ start(): 使用 uvicorn 啟動網頁伺服器
    # -----------------------------------------------------------------------------
    def start(self, log_level: str = "info"):
        """
        使用 uvicorn（ASGI 網頁伺服器）啟動 A2A 伺服器。
        此函式會阻塞並永久運行伺服器。
        """
        if not self.agent_card or not self.task_manager:
            raise ValueError("Agent card 和 task manager 為必填")
        import uvicorn
        uvicorn.run(self.app, host=self.host, port=self.port, log_level=log_level.lower())
