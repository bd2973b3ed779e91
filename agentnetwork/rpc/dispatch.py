"""
JSON-RPC dispatch layer for AgentNetwork.

Maps ``habiliai-agentnetwork-v1.<Method>`` names onto the CRUD operations,
validates params against the pydantic request models before any state is
touched, and wraps every outcome in a JSON-RPC 2.0 envelope.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiosqlite
from pydantic import BaseModel, ValidationError

from agentnetwork.config import METHOD_PREFIX
from agentnetwork.db import crud
from agentnetwork.errors import (
    INTERNAL_ERROR,
    AgentNetworkError,
    InvalidRequest,
    MalformedRequest,
    MethodNotFound,
)
from agentnetwork.rpc import schemas

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
_NO_ID = object()


# ─────────────────────────────────────────────
# Handlers
# ─────────────────────────────────────────────

async def handle_create_thread(db, req: schemas.CreateThreadRequest) -> schemas.CreateThreadResponse:
    thread = await crud.thread_create(db, req.instruction, req.participants, req.metadata)
    return schemas.CreateThreadResponse(thread_id=thread.id)


async def handle_get_thread(db, req: schemas.GetThreadRequest) -> schemas.ThreadRecord:
    return schemas.ThreadRecord.from_model(await crud.thread_get(db, req.thread_id))


async def handle_get_threads(db, req: schemas.GetThreadsRequest) -> schemas.GetThreadsResponse:
    threads, next_cursor = await crud.thread_list(db, cursor=req.cursor, limit=req.limit)
    return schemas.GetThreadsResponse(
        threads=[schemas.ThreadRecord.from_model(t) for t in threads],
        next_cursor=next_cursor,
    )


async def handle_add_message(db, req: schemas.AddMessageRequest) -> schemas.AddMessageResponse:
    msg = await crud.msg_post(
        db,
        thread_id=req.thread_id,
        sender=req.sender,
        content=req.content,
        tool_calls=[c.to_model() for c in req.tool_calls or []],
    )
    return schemas.AddMessageResponse(message_id=msg.id)


async def handle_get_messages(db, req: schemas.GetMessagesRequest) -> schemas.GetMessagesResponse:
    msgs, next_cursor = await crud.msg_list(db, req.thread_id, order=req.order, cursor=req.cursor, limit=req.limit)
    return schemas.GetMessagesResponse(
        # An empty page is null on the wire, matching existing clients.
        messages=[schemas.MessageRecord.from_model(m) for m in msgs] or None,
        next_cursor=next_cursor,
    )


async def handle_get_num_messages(db, req: schemas.GetNumMessagesRequest) -> schemas.GetNumMessagesResponse:
    return schemas.GetNumMessagesResponse(num_messages=await crud.msg_count(db, req.thread_id))


async def handle_is_mentioned_once(db, req: schemas.IsMentionedOnceRequest) -> schemas.IsMentionedOnceResponse:
    return schemas.IsMentionedOnceResponse(thread_ids=await crud.threads_mentioning_once(db, req.agent_name))


async def handle_delete_message(db, req: schemas.DeleteMessageRequest) -> schemas.Empty:
    await crud.msg_delete(db, req.message_id)
    return schemas.Empty()


async def handle_register_agent(db, req: schemas.RegisterAgentRequest) -> schemas.Empty:
    await crud.agent_register(db, req.addr, [i.to_model() for i in req.info], secure=req.secure)
    return schemas.Empty()


async def handle_deregister_agent(db, req: schemas.DeregisterAgentRequest) -> schemas.Empty:
    await crud.agent_deregister(db, req.names)
    return schemas.Empty()


async def handle_check_live(db, req: schemas.CheckLiveRequest) -> schemas.Empty:
    await crud.agent_check_live(db, req.names)
    return schemas.Empty()


async def handle_get_agent_runtime_info(
    db, req: schemas.GetAgentRuntimeInfoRequest
) -> schemas.GetAgentRuntimeInfoResponse:
    agents = await crud.agent_list(db, None if req.all else (req.names or []))
    return schemas.GetAgentRuntimeInfoResponse(
        agent_runtime_info=[schemas.AgentRuntimeInfo.from_model(a) for a in agents]
    )


@dataclass(frozen=True)
class RpcMethod:
    name: str
    params: type[BaseModel]
    handler: Callable[[aiosqlite.Connection, Any], Awaitable[BaseModel]]
    description: str


METHODS: dict[str, RpcMethod] = {
    m.name: m
    for m in (
        RpcMethod("CreateThread", schemas.CreateThreadRequest, handle_create_thread,
                  "Create a conversation thread and return its id."),
        RpcMethod("GetThread", schemas.GetThreadRequest, handle_get_thread,
                  "Get a single thread by id."),
        RpcMethod("GetThreads", schemas.GetThreadsRequest, handle_get_threads,
                  "List threads newest-first. Pass next_cursor back as cursor to continue."),
        RpcMethod("AddMessage", schemas.AddMessageRequest, handle_add_message,
                  "Append a message (with optional tool-call records) to a thread."),
        RpcMethod("GetMessages", schemas.GetMessagesRequest, handle_get_messages,
                  "Page through a thread's messages, 'latest' or 'oldest' first. next_cursor 0 means done."),
        RpcMethod("GetNumMessages", schemas.GetNumMessagesRequest, handle_get_num_messages,
                  "Count the live messages of a thread."),
        RpcMethod("IsMentionedOnce", schemas.IsMentionedOnceRequest, handle_is_mentioned_once,
                  "Ids of threads where @agent_name appears exactly once across live messages."),
        RpcMethod("DeleteMessage", schemas.DeleteMessageRequest, handle_delete_message,
                  "Soft-delete a message; it disappears from every read."),
        RpcMethod("RegisterAgent", schemas.RegisterAgentRequest, handle_register_agent,
                  "Register (or update) a batch of agents reachable at addr. All-or-nothing."),
        RpcMethod("DeregisterAgent", schemas.DeregisterAgentRequest, handle_deregister_agent,
                  "Remove agents by name. Unknown names are ignored."),
        RpcMethod("CheckLive", schemas.CheckLiveRequest, handle_check_live,
                  "Succeed only if every named agent answers its liveness probe."),
        RpcMethod("GetAgentRuntimeInfo", schemas.GetAgentRuntimeInfoRequest, handle_get_agent_runtime_info,
                  "Runtime records for the named agents, or for every agent with all=true."),
    )
}


# ─────────────────────────────────────────────
# Invocation
# ─────────────────────────────────────────────

def resolve_method(name: Any) -> RpcMethod:
    if not isinstance(name, str) or not name.startswith(METHOD_PREFIX):
        raise MethodNotFound(f"Method not found: {name!r}")
    method = METHODS.get(name[len(METHOD_PREFIX):])
    if method is None:
        raise MethodNotFound(f"Method not found: {name!r}")
    return method


def validate_params(method: RpcMethod, params: Any) -> BaseModel:
    if params is None:
        params = {}
    # Some JSON-RPC clients wrap by-name params in a one-element array
    if isinstance(params, list) and len(params) == 1 and isinstance(params[0], dict):
        params = params[0]
    if not isinstance(params, dict):
        raise InvalidRequest(f"{method.name}: params must be an object")
    try:
        return method.params.model_validate(params)
    except ValidationError as e:
        raise InvalidRequest(
            f"{method.name}: invalid params",
            data=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


async def call_method(db: aiosqlite.Connection, method: RpcMethod, params: Any) -> dict:
    """Validate ``params`` and run ``method``; returns the JSON-ready result."""
    req = validate_params(method, params)
    result = await method.handler(db, req)
    return result.model_dump(mode="json")


def envelope(req_id: Any, *, result: Any = None, error: Optional[dict] = None) -> dict:
    resp = {"jsonrpc": JSONRPC_VERSION}
    if error is not None:
        resp["error"] = error
    else:
        resp["result"] = result
    resp["id"] = req_id
    return resp


async def handle_request(db: aiosqlite.Connection, request: Any) -> Optional[dict]:
    """Handle one JSON-RPC request object. Returns None for notifications."""
    req_id = request.get("id", _NO_ID) if isinstance(request, dict) else None
    is_notification = req_id is _NO_ID
    if is_notification:
        req_id = None

    try:
        if not isinstance(request, dict) or request.get("jsonrpc") != JSONRPC_VERSION:
            raise MalformedRequest("Invalid Request: expected a JSON-RPC 2.0 request object")
        if "method" not in request:
            raise MalformedRequest("Invalid Request: missing method")
        method = resolve_method(request["method"])
        result = await call_method(db, method, request.get("params"))
    except AgentNetworkError as e:
        logger.debug(f"[rpc] {request.get('method') if isinstance(request, dict) else None} failed: {e.code} {e.message}")
        return None if is_notification else envelope(req_id, error=e.to_dict())
    except Exception:
        logger.exception(f"[rpc] unexpected failure handling {request.get('method')}")
        return None if is_notification else envelope(
            req_id, error={"code": INTERNAL_ERROR, "message": "Internal error"}
        )

    return None if is_notification else envelope(req_id, result=result)


async def handle_payload(db: aiosqlite.Connection, payload: Any) -> Optional[dict | list]:
    """Handle a single request or a batch. Returns None when nothing needs answering."""
    if isinstance(payload, list):
        if not payload:
            return envelope(None, error=MalformedRequest("Invalid Request: empty batch").to_dict())
        responses = []
        for item in payload:
            resp = await handle_request(db, item)
            if resp is not None:
                responses.append(resp)
        return responses or None
    return await handle_request(db, payload)
