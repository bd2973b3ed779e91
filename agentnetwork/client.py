"""
Async JSON-RPC client for AgentNetwork.

    async with AgentNetworkClient("http://127.0.0.1:9080/rpc") as net:
        tid = await net.create_thread(instruction="triage", participants=["alice"])
        await net.add_message(tid, "alice", "hello @bob")
"""
import itertools
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from agentnetwork.config import METHOD_PREFIX, NETWORK_ENDPOINT
from agentnetwork.errors import TransportError, error_from_dict

logger = logging.getLogger(__name__)


class AgentNetworkClient:
    def __init__(
        self,
        endpoint: str = NETWORK_ENDPOINT,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "AgentNetworkClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(self, method: str, params: Optional[dict] = None) -> Any:
        """Invoke ``habiliai-agentnetwork-v1.<method>`` and return its result.

        JSON-RPC errors are raised as the matching AgentNetworkError subclass;
        anything that stops the call from completing raises TransportError.
        """
        req_id = next(self._ids)
        body = {"jsonrpc": "2.0", "method": METHOD_PREFIX + method, "params": params or {}, "id": req_id}
        try:
            resp = await self._http.post(self.endpoint, json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: {type(e).__name__}: {e}") from e
        if not resp.is_success:
            raise TransportError(f"{method}: HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as e:
            raise TransportError(f"{method}: response is not JSON", status_code=resp.status_code) from e

        if not isinstance(payload, dict):
            raise TransportError(f"{method}: unexpected response shape", status_code=resp.status_code)
        if payload.get("error") is not None:
            raise error_from_dict(payload["error"])
        return payload.get("result")

    # ── Thread store ──────────────────────────

    async def create_thread(
        self,
        instruction: str = "",
        participants: Optional[list[str]] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> int:
        params: dict[str, Any] = {"instruction": instruction, "participants": participants or []}
        if metadata:
            params["metadata"] = metadata
        result = await self.call("CreateThread", params)
        return result["thread_id"]

    async def get_thread(self, thread_id: int) -> dict:
        return await self.call("GetThread", {"thread_id": thread_id})

    async def get_threads(self, cursor: int = 0, limit: int = 0) -> tuple[list[dict], Optional[int]]:
        result = await self.call("GetThreads", {"cursor": cursor, "limit": limit})
        return result["threads"], result.get("next_cursor")

    # ── Message log ───────────────────────────

    async def add_message(
        self,
        thread_id: int,
        sender: str,
        content: str,
        tool_calls: Optional[list[dict]] = None,
    ) -> int:
        params: dict[str, Any] = {"thread_id": thread_id, "sender": sender, "content": content}
        if tool_calls:
            params["tool_calls"] = tool_calls
        result = await self.call("AddMessage", params)
        return result["message_id"]

    async def get_messages(
        self,
        thread_id: int,
        order: str = "oldest",
        cursor: int = 0,
        limit: int = 0,
    ) -> tuple[list[dict], int]:
        result = await self.call(
            "GetMessages", {"thread_id": thread_id, "order": order, "cursor": cursor, "limit": limit}
        )
        return result.get("messages") or [], result.get("next_cursor", 0)

    async def iter_messages(self, thread_id: int, order: str = "oldest", limit: int = 0) -> AsyncIterator[dict]:
        """Yield every live message of a thread, following cursors until exhausted."""
        cursor = 0
        while True:
            messages, cursor = await self.get_messages(thread_id, order=order, cursor=cursor, limit=limit)
            for msg in messages:
                yield msg
            if not cursor:
                return

    async def get_num_messages(self, thread_id: int) -> int:
        result = await self.call("GetNumMessages", {"thread_id": thread_id})
        return result["num_messages"]

    async def is_mentioned_once(self, agent_name: str) -> list[int]:
        result = await self.call("IsMentionedOnce", {"agent_name": agent_name})
        return result["thread_ids"]

    async def delete_message(self, message_id: int) -> None:
        await self.call("DeleteMessage", {"message_id": message_id})

    # ── Agent registry ────────────────────────

    async def register_agent(self, addr: str, info: list[dict], secure: bool = False) -> None:
        await self.call("RegisterAgent", {"addr": addr, "secure": secure, "info": info})

    async def deregister_agent(self, names: list[str]) -> None:
        await self.call("DeregisterAgent", {"names": names})

    async def check_live(self, names: list[str]) -> None:
        await self.call("CheckLive", {"names": names})

    async def get_agent_runtime_info(self, names: Optional[list[str]] = None, all: bool = False) -> list[dict]:
        params: dict[str, Any] = {"all": all}
        if names is not None:
            params["names"] = names
        result = await self.call("GetAgentRuntimeInfo", params)
        return result["agent_runtime_info"]
