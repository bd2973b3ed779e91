"""
Request/response shapes for the AgentNetwork JSON-RPC methods.

Field names are the wire names; every request model rejects unknown fields
so typos fail loudly instead of being ignored.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, model_serializer

from agentnetwork.config import MAX_PAGE_LIMIT
from agentnetwork.db import models


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Empty(BaseModel):
    pass


# ── Entities on the wire ───────────────────────

class MessageToolCall(BaseModel):
    name: str = Field(min_length=1)
    arguments: JsonValue = None
    result: JsonValue = None

    def to_model(self) -> models.MessageToolCall:
        return models.MessageToolCall(name=self.name, arguments=self.arguments, result=self.result)


class ThreadRecord(BaseModel):
    id: int
    created_at: datetime
    updated_at: datetime
    instruction: str
    participants: list[str]
    metadata: Optional[dict[str, str]] = None

    @classmethod
    def from_model(cls, t: models.Thread) -> "ThreadRecord":
        return cls(id=t.id, created_at=t.created_at, updated_at=t.updated_at,
                   instruction=t.instruction, participants=t.participants, metadata=t.metadata)


class MessageRecord(BaseModel):
    id: int
    thread_id: int
    sender: str
    content: str
    tool_calls: list[MessageToolCall]
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, m: models.Message) -> "MessageRecord":
        return cls(
            id=m.id, thread_id=m.thread_id, sender=m.sender, content=m.content,
            tool_calls=[MessageToolCall(name=c.name, arguments=c.arguments, result=c.result) for c in m.tool_calls],
            created_at=m.created_at, updated_at=m.updated_at, deleted_at=m.deleted_at,
        )


class AgentInfo(BaseModel):
    name: str = Field(min_length=1)
    role: str = ""
    description: str = ""
    instructions: str = ""
    metadata: Optional[dict[str, str]] = None

    def to_model(self) -> models.AgentInfo:
        return models.AgentInfo(name=self.name, role=self.role, description=self.description,
                                instructions=self.instructions, metadata=self.metadata)


class AgentRuntimeInfo(BaseModel):
    info: AgentInfo
    addr: str
    secure: bool = False
    last_live_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, a: models.AgentRuntime) -> "AgentRuntimeInfo":
        return cls(
            info=AgentInfo(name=a.name, role=a.role, description=a.description,
                           instructions=a.instructions, metadata=a.metadata),
            addr=a.addr, secure=a.secure, last_live_at=a.last_live_at,
        )


# ── Thread store ───────────────────────────────

class CreateThreadRequest(_Request):
    instruction: str = ""
    participants: list[str] = Field(default_factory=list)
    metadata: Optional[dict[str, str]] = None


class CreateThreadResponse(BaseModel):
    thread_id: int


class GetThreadRequest(_Request):
    thread_id: int = Field(ge=1)


class GetThreadsRequest(_Request):
    cursor: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0, le=MAX_PAGE_LIMIT)


class GetThreadsResponse(BaseModel):
    threads: list[ThreadRecord]
    next_cursor: Optional[int] = None

    @model_serializer(mode="wrap")
    def _omit_final_cursor(self, handler):
        data = handler(self)
        if data.get("next_cursor") is None:
            data.pop("next_cursor", None)
        return data


# ── Message log ────────────────────────────────

class AddMessageRequest(_Request):
    thread_id: int = Field(ge=1)
    sender: str = Field(min_length=1)
    content: str
    tool_calls: Optional[list[MessageToolCall]] = None


class AddMessageResponse(BaseModel):
    message_id: int


class GetMessagesRequest(_Request):
    thread_id: int = Field(ge=1)
    order: Literal["latest", "oldest"]
    cursor: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0, le=MAX_PAGE_LIMIT)


class GetMessagesResponse(BaseModel):
    messages: Optional[list[MessageRecord]] = None
    next_cursor: int = 0


class GetNumMessagesRequest(_Request):
    thread_id: int = Field(ge=1)


class GetNumMessagesResponse(BaseModel):
    num_messages: int


class IsMentionedOnceRequest(_Request):
    agent_name: str = Field(min_length=1)


class IsMentionedOnceResponse(BaseModel):
    thread_ids: list[int]


class DeleteMessageRequest(_Request):
    message_id: int = Field(ge=1)


# ── Agent registry ─────────────────────────────

class RegisterAgentRequest(_Request):
    addr: str = Field(min_length=1)
    secure: bool = False
    info: list[AgentInfo]


class DeregisterAgentRequest(_Request):
    names: list[str]


class CheckLiveRequest(_Request):
    names: list[str]


class GetAgentRuntimeInfoRequest(_Request):
    names: Optional[list[str]] = None
    all: bool = False


class GetAgentRuntimeInfoResponse(BaseModel):
    agent_runtime_info: list[AgentRuntimeInfo]
