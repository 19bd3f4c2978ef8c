# =============================================================================
# models/agent.py
# =============================================================================
# 目的：
# 定義代理的中繼資料（AgentCard），由 GET /.well-known/agent.json 提供，
# 讓其他代理或 client 得知此代理的名稱、能力與技能。
# =============================================================================

from pydantic import BaseModel, Field


class AgentCapabilities(BaseModel):
    streaming: bool = False                  # 是否支援 tasks/sendSubscribe
    pushNotifications: bool = False          # 是否支援推播通知
    stateTransitionHistory: bool = False


class AgentProvider(BaseModel):
    organization: str
    url: str | None = None


class AgentAuthentication(BaseModel):
    schemes: list[str]
    credentials: str | None = None


class AgentSkill(BaseModel):
    id: str
    name: str
    description: str | None = None
    tags: list[str] | None = None
    examples: list[str] | None = None
    inputModes: list[str] | None = None
    outputModes: list[str] | None = None


class AgentCard(BaseModel):
    name: str
    description: str | None = None
    url: str
    provider: AgentProvider | None = None
    version: str
    documentationUrl: str | None = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    authentication: AgentAuthentication | None = None
    defaultInputModes: list[str] = Field(default_factory=lambda: ["text"])
    defaultOutputModes: list[str] = Field(default_factory=lambda: ["text"])
    skills: list[AgentSkill] = Field(default_factory=list)
