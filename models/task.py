# =============================================================================
# models/task.py
# =============================================================================
# 目的：
# 此模組定義 Agent2Agent 協議中**任務相關的模型**。
#
# 這些模型代表：
# - 任務的結構（`Task`）與狀態（`TaskStatus`, `TaskState`）
# - 任務過程中的訊息（`Message`）與內容片段（文字 / 檔案 / 結構化資料）
# - 代理產出的成果（`Artifact`）
# - 推播通知設定（`PushNotificationConfig`）
# - 發送、查詢、取消任務時所用的參數
# - 串流時推送給訂閱者的事件
# =============================================================================

# -----------------------------------------------------------------------------
# 匯入
# -----------------------------------------------------------------------------

from datetime import datetime                  # 儲存時間戳記
from enum import Enum                          # 用於建立固定值常數（如任務狀態）
from typing import Annotated, Any, Literal, Union
from uuid import uuid4                         # 產生唯一識別碼

from pydantic import BaseModel, Field, model_validator


# -----------------------------------------------------------------------------
# TaskState：預設任務生命週期狀態的列舉
# -----------------------------------------------------------------------------

class TaskState(str, Enum):
    SUBMITTED = "submitted"              # 任務已收到
    WORKING = "working"                  # 任務進行中
    INPUT_REQUIRED = "input-required"    # 代理等待更多輸入
    COMPLETED = "completed"              # 任務已完成
    CANCELED = "canceled"                # 任務被使用者或系統取消
    FAILED = "failed"                    # 發生錯誤
    UNKNOWN = "unknown"                  # 未定義或無法識別的狀態


# -----------------------------------------------------------------------------
# 訊息片段：文字、檔案、結構化資料三種變體，以 `type` 欄位區分
# -----------------------------------------------------------------------------

class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str
    metadata: dict[str, Any] | None = None


class FileContent(BaseModel):
    name: str | None = None
    mimeType: str | None = None
    bytes: str | None = None            # Base64 編碼的內容
    uri: str | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self):
        # 檔案內容必須是「內嵌 bytes」或「uri」其中之一，不能兩者皆有或皆無
        if (self.bytes is None) == (self.uri is None):
            raise ValueError("FileContent 必須剛好提供 'bytes' 或 'uri' 其中之一")
        return self

    def __repr__(self) -> str:
        data = "[BASE64 DATA]" if self.bytes is not None else None
        return f"FileContent(name={self.name!r}, mimeType={self.mimeType!r}, bytes={data}, uri={self.uri!r})"


class FilePart(BaseModel):
    type: Literal["file"] = "file"
    file: FileContent
    metadata: dict[str, Any] | None = None


class DataPart(BaseModel):
    type: Literal["data"] = "data"
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


# 判別聯集：依 `type` 欄位決定是哪一種片段
Part = Annotated[Union[TextPart, FilePart, DataPart], Field(discriminator="type")]


# -----------------------------------------------------------------------------
# Message：任務歷史中的一則訊息
# -----------------------------------------------------------------------------

class Message(BaseModel):
    role: Literal["user", "agent"]  # 訊息發送者："user" 或 "agent"
    parts: list[Part]               # 一則訊息可包含多個片段
    metadata: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# TaskStatus：描述任務在某一時刻的狀態
# -----------------------------------------------------------------------------

class TaskStatus(BaseModel):
    state: TaskState
    message: Message | None = None

    # 自動記錄狀態建立的時間
    timestamp: datetime = Field(default_factory=datetime.now)


# -----------------------------------------------------------------------------
# Artifact：代理產出的成果，可透過 append / lastChunk 分段組裝
# -----------------------------------------------------------------------------

class Artifact(BaseModel):
    name: str | None = None
    description: str | None = None
    parts: list[Part] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None
    index: int = 0
    append: bool | None = None       # True 表示接續同 index 的前一段
    lastChunk: bool | None = None    # True 表示此 artifact 已傳送完畢


# -----------------------------------------------------------------------------
# Task：Agent2Agent 協議中的核心任務單位
# -----------------------------------------------------------------------------

class Task(BaseModel):
    id: str                                  # 任務的唯一識別碼，建立後不會改變
    sessionId: str | None = None             # 用於分組相關任務的會話 ID
    status: TaskStatus                       # 任務目前的狀態
    history: list[Message] = Field(default_factory=list)
    artifacts: list[Artifact] | None = None
    metadata: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# 推播通知設定
# -----------------------------------------------------------------------------

class AuthenticationInfo(BaseModel):
    schemes: list[str]
    credentials: str | None = None


class PushNotificationConfig(BaseModel):
    url: str
    token: str | None = None
    authentication: AuthenticationInfo | None = None

    def __repr__(self) -> str:
        # token 不應出現在日誌中
        token = "***" if self.token else None
        return f"PushNotificationConfig(url={self.url!r}, token={token}, authentication={self.authentication!r})"

    __str__ = __repr__


class TaskPushNotificationConfig(BaseModel):
    id: str
    pushNotificationConfig: PushNotificationConfig


# -----------------------------------------------------------------------------
# API 請求參數模型
# -----------------------------------------------------------------------------

# 用於識別任務，例如取消或查詢推播設定時
class TaskIdParams(BaseModel):
    id: str
    metadata: dict[str, Any] | None = None


# 查詢任務時可控制回傳多少歷史訊息
class TaskQueryParams(TaskIdParams):
    historyLength: int | None = Field(default=None, ge=0)


# 發送任務給代理所需的參數
class TaskSendParams(BaseModel):
    id: str

    # 若未提供則自動產生
    sessionId: str = Field(default_factory=lambda: uuid4().hex)

    message: Message
    historyLength: int | None = Field(default=None, ge=0)
    pushNotification: PushNotificationConfig | None = None
    metadata: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# 串流事件：推送給訂閱者
# -----------------------------------------------------------------------------

class TaskStatusUpdateEvent(BaseModel):
    id: str
    status: TaskStatus
    final: bool = False
    metadata: dict[str, Any] | None = None


class TaskArtifactUpdateEvent(BaseModel):
    id: str
    artifact: Artifact
    metadata: dict[str, Any] | None = None


TaskEvent = Union[TaskStatusUpdateEvent, TaskArtifactUpdateEvent]
