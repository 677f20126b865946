from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SendTextRequest(BaseModel):
    number: Optional[str] = None
    text: Optional[str] = None
    instance: Optional[str] = None


class EmbeddingRefreshRequest(BaseModel):
    text: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


class DrainResponse(BaseModel):
    ok: bool = True
    processed: int


class DebugEnv(BaseModel):
    has_openai_key: bool
    has_evolution_url: bool
    has_evolution_key: bool
    evolution_instance: str


class GatewayConnection(BaseModel):
    ok: bool
    state: Optional[str] = None
    error: Optional[str] = None


class DebugResponse(BaseModel):
    app: str
    time: datetime
    env: DebugEnv
    evolution: Optional[GatewayConnection] = None
