"""
MCP Server for AgentNetwork.

Exposes every JSON-RPC method as an MCP tool so agents that speak MCP can use
the network without a JSON-RPC client. Mounted onto the FastAPI app via SSE
transport, or run standalone over stdio (see stdio_main.py).
"""
import json
import logging
from typing import Any

import mcp.types as types
from mcp.server import Server

from agentnetwork.db.database import get_db
from agentnetwork.errors import AgentNetworkError
from agentnetwork.rpc.dispatch import METHODS, RpcMethod, call_method

logger = logging.getLogger(__name__)

server = Server("AgentNetwork")

# MCP tool name -> JSON-RPC method name
TOOL_METHODS: dict[str, str] = {
    "thread_create":      "CreateThread",
    "thread_get":         "GetThread",
    "thread_list":        "GetThreads",
    "msg_post":           "AddMessage",
    "msg_list":           "GetMessages",
    "msg_count":          "GetNumMessages",
    "msg_delete":         "DeleteMessage",
    "mentions_once":      "IsMentionedOnce",
    "agent_register":     "RegisterAgent",
    "agent_deregister":   "DeregisterAgent",
    "agent_check_live":   "CheckLive",
    "agent_runtime_info": "GetAgentRuntimeInfo",
}


def _tool_method(name: str) -> RpcMethod:
    method_name = TOOL_METHODS.get(name)
    if method_name is None:
        raise KeyError(name)
    return METHODS[method_name]


# ═════════════════════════════════════════════
# TOOLS
# ═════════════════════════════════════════════

@server.list_tools()
async def list_tools() -> list[types.Tool]:
    tools = []
    for tool_name, method_name in TOOL_METHODS.items():
        method = METHODS[method_name]
        tools.append(types.Tool(
            name=tool_name,
            description=method.description,
            inputSchema=method.params.model_json_schema(),
        ))
    return tools


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
    return await dispatch_tool(await get_db(), name, arguments)


async def dispatch_tool(db, name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
    """Run one tool call. Protocol errors come back as an ``error`` object, not an exception."""
    try:
        method = _tool_method(name)
    except KeyError:
        logger.warning(f"[mcp] unknown tool '{name}'")
        return _text({"error": {"code": None, "message": f"Unknown tool: {name}"}})

    try:
        result = await call_method(db, method, arguments or {})
    except AgentNetworkError as e:
        logger.debug(f"[mcp] {name} failed: {e.code} {e.message}")
        return _text({"error": e.to_dict()})
    return _text(result)


def _text(payload: Any) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=json.dumps(payload))]
