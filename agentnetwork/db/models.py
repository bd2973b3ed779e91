"""
Data models (dataclasses) for AgentNetwork.
These are plain Python objects used across the DB, RPC, and MCP layers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from agentnetwork.mentions import MENTION_PREFIX, TRAILING_PUNCTUATION, name_key

# Reserved sender for messages typed by a human through a UI client.
USER_SENDER = "USER"


@dataclass
class MessageToolCall:
    name: str
    arguments: Any = None        # opaque JSON value
    result: Any = None           # opaque JSON value, None until the call completes

    def to_dict(self) -> dict:
        return {"name": self.name, "arguments": self.arguments, "result": self.result}


@dataclass
class Thread:
    id: int
    instruction: str
    participants: list[str]      # ordered, case-insensitively unique; empty = unrestricted
    metadata: Optional[dict[str, str]]
    created_at: datetime
    updated_at: datetime

    def allows_sender(self, sender: str) -> bool:
        if not self.participants or sender == USER_SENDER:
            return True
        return name_key(sender) in {name_key(p) for p in self.participants}


@dataclass
class Message:
    id: int                      # log-wide, strictly increasing by insertion
    thread_id: int
    sender: str                  # agent name or USER_SENDER
    content: str
    tool_calls: list[MessageToolCall] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None   # soft-delete tombstone


@dataclass
class AgentInfo:
    """Capability description supplied by an agent at registration time."""
    name: str
    role: str = ""
    description: str = ""
    instructions: str = ""
    metadata: Optional[dict[str, str]] = None


@dataclass
class AgentRuntime:
    id: int                      # registration order
    name: str
    addr: str
    secure: bool
    role: str
    description: str
    instructions: str
    metadata: Optional[dict[str, str]]
    registered_at: datetime
    last_live_at: datetime


def is_valid_agent_name(name: str) -> bool:
    """Agent names must be single tokens that survive @mention parsing unchanged."""
    if not name or name != name.strip() or len(name.split()) != 1:
        return False
    return name.rstrip(TRAILING_PUNCTUATION) == name and not name.startswith(MENTION_PREFIX)


def normalize_participants(names: list[str]) -> list[str]:
    """Collapse duplicate participant names, keeping the first spelling and order."""
    seen = set()
    result = []
    for name in names:
        name = name.strip()
        if not name or name_key(name) in seen:
            continue
        seen.add(name_key(name))
        result.append(name)
    return result
