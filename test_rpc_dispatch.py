import pytest

from agentnetwork.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LIVENESS_FAILED,
    METHOD_NOT_FOUND,
    NOT_FOUND,
)
from agentnetwork.rpc import dispatch
from agentnetwork.rpc.dispatch import handle_payload, handle_request

P = "habiliai-agentnetwork-v1."


def _req(method, params=None, req_id=1):
    body = {"jsonrpc": "2.0", "method": P + method, "id": req_id}
    if params is not None:
        body["params"] = params
    return body


async def _call(db, method, params=None):
    resp = await handle_request(db, _req(method, params))
    assert "error" not in resp, resp
    return resp["result"]


@pytest.mark.asyncio
async def test_thread_and_message_round_trip(db):
    tid = (await _call(db, "CreateThread", {"instruction": "triage", "participants": ["a", "b"]}))["thread_id"]

    thread = await _call(db, "GetThread", {"thread_id": tid})
    assert thread["id"] == tid
    assert thread["participants"] == ["a", "b"]
    assert thread["metadata"] is None

    for sender, content in [("USER", "start"), ("a", "one"), ("b", "two")]:
        await _call(db, "AddMessage", {"thread_id": tid, "sender": sender, "content": content})

    assert await _call(db, "GetNumMessages", {"thread_id": tid}) == {"num_messages": 3}

    page = await _call(db, "GetMessages", {"thread_id": tid, "order": "oldest", "limit": 2})
    assert [m["content"] for m in page["messages"]] == ["start", "one"]
    assert page["next_cursor"] == page["messages"][1]["id"]
    assert page["messages"][0]["tool_calls"] == []
    assert page["messages"][0]["deleted_at"] is None

    rest = await _call(db, "GetMessages", {"thread_id": tid, "order": "oldest", "cursor": page["next_cursor"], "limit": 2})
    assert [m["content"] for m in rest["messages"]] == ["two"]
    assert rest["next_cursor"] == 0


@pytest.mark.asyncio
async def test_get_messages_empty_page_is_null(db):
    tid = (await _call(db, "CreateThread", {}))["thread_id"]
    assert await _call(db, "GetMessages", {"thread_id": tid, "order": "latest"}) == {"messages": None, "next_cursor": 0}


@pytest.mark.asyncio
async def test_get_threads_omits_cursor_on_final_page(db):
    for _ in range(3):
        await _call(db, "CreateThread", {})

    first = await _call(db, "GetThreads", {"limit": 2})
    assert len(first["threads"]) == 2
    assert "next_cursor" in first

    last = await _call(db, "GetThreads", {"cursor": first["next_cursor"], "limit": 2})
    assert len(last["threads"]) == 1
    assert "next_cursor" not in last


@pytest.mark.asyncio
async def test_tool_calls_pass_through_as_json(db):
    tid = (await _call(db, "CreateThread", {}))["thread_id"]
    call = {"name": "search", "arguments": {"q": "x", "n": 3}, "result": [1, "two", None]}
    await _call(db, "AddMessage", {"thread_id": tid, "sender": "USER", "content": "c", "tool_calls": [call]})

    page = await _call(db, "GetMessages", {"thread_id": tid, "order": "oldest"})
    assert page["messages"][0]["tool_calls"] == [call]


@pytest.mark.asyncio
async def test_mention_and_delete_methods(db):
    tid = (await _call(db, "CreateThread", {}))["thread_id"]
    await _call(db, "AddMessage", {"thread_id": tid, "sender": "USER", "content": "@bot hi"})
    mid = (await _call(db, "AddMessage", {"thread_id": tid, "sender": "USER", "content": "@bot again"}))["message_id"]
    assert await _call(db, "IsMentionedOnce", {"agent_name": "bot"}) == {"thread_ids": []}

    assert await _call(db, "DeleteMessage", {"message_id": mid}) == {}
    assert await _call(db, "IsMentionedOnce", {"agent_name": "bot"}) == {"thread_ids": [tid]}


@pytest.mark.asyncio
async def test_agent_methods(db, record_liveness):
    info = [{"name": "alice", "role": "reviewer"}, {"name": "bob"}]
    assert await _call(db, "RegisterAgent", {"addr": "http://h:1", "info": info}) == {}

    runtime = await _call(db, "GetAgentRuntimeInfo", {"all": True})
    assert [r["info"]["name"] for r in runtime["agent_runtime_info"]] == ["alice", "bob"]
    assert runtime["agent_runtime_info"][0]["addr"] == "http://h:1"
    assert runtime["agent_runtime_info"][0]["info"]["role"] == "reviewer"

    named = await _call(db, "GetAgentRuntimeInfo", {"names": ["bob"]})
    assert [r["info"]["name"] for r in named["agent_runtime_info"]] == ["bob"]
    assert await _call(db, "GetAgentRuntimeInfo", {}) == {"agent_runtime_info": []}

    assert await _call(db, "CheckLive", {"names": ["alice", "bob"]}) == {}
    assert await _call(db, "DeregisterAgent", {"names": ["bob", "ghost"]}) == {}

    resp = await handle_request(db, _req("CheckLive", {"names": ["bob"]}))
    assert resp["error"]["code"] == LIVENESS_FAILED
    assert resp["error"]["data"] == {"unreachable": ["bob"]}


@pytest.mark.asyncio
async def test_one_element_array_params_are_unwrapped(db):
    resp = await handle_request(db, _req("CreateThread", [{"instruction": "wrapped"}]))
    tid = resp["result"]["thread_id"]
    assert (await _call(db, "GetThread", {"thread_id": tid}))["instruction"] == "wrapped"


@pytest.mark.asyncio
async def test_error_codes(db):
    resp = await handle_request(db, _req("GetThread", {"thread_id": 42}, req_id="x"))
    assert resp["id"] == "x"
    assert resp["error"]["code"] == NOT_FOUND

    resp = await handle_request(db, _req("NoSuchMethod", {}))
    assert resp["error"]["code"] == METHOD_NOT_FOUND

    resp = await handle_request(db, {"jsonrpc": "2.0", "method": "CreateThread", "id": 1})
    assert resp["error"]["code"] == METHOD_NOT_FOUND

    resp = await handle_request(db, {"method": P + "CreateThread", "id": 1})
    assert resp["error"]["code"] == INVALID_REQUEST

    resp = await handle_request(db, "not an object")
    assert resp["error"]["code"] == INVALID_REQUEST
    assert resp["id"] is None


@pytest.mark.asyncio
async def test_invalid_params_touch_no_state(db):
    resp = await handle_request(db, _req("GetMessages", {"thread_id": 1, "order": "sideways"}))
    assert resp["error"]["code"] == INVALID_PARAMS
    assert tuple(resp["error"]["data"][0]["loc"]) == ("order",)

    resp = await handle_request(db, _req("CreateThread", {"instrction": "typo"}))
    assert resp["error"]["code"] == INVALID_PARAMS

    resp = await handle_request(db, _req("CreateThread", "just a string"))
    assert resp["error"]["code"] == INVALID_PARAMS

    resp = await handle_request(db, _req("RegisterAgent", {"addr": "http://h:1", "info": [{"name": "ok"}, {"name": ""}]}))
    assert resp["error"]["code"] == INVALID_PARAMS

    assert (await _call(db, "GetThreads", {}))["threads"] == []
    assert (await _call(db, "GetAgentRuntimeInfo", {"all": True}))["agent_runtime_info"] == []


@pytest.mark.asyncio
async def test_batch_and_notifications(db):
    notification = {"jsonrpc": "2.0", "method": P + "CreateThread", "params": {}}
    assert await handle_payload(db, notification) is None

    responses = await handle_payload(db, [
        _req("CreateThread", {}, req_id=1),
        notification,
        _req("GetThread", {"thread_id": 999}, req_id=2),
    ])
    assert [r["id"] for r in responses] == [1, 2]
    assert "result" in responses[0]
    assert responses[1]["error"]["code"] == NOT_FOUND

    threads = (await _call(db, "GetThreads", {}))["threads"]
    assert len(threads) == 3

    assert await handle_payload(db, [notification]) is None

    empty = await handle_payload(db, [])
    assert empty["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_unexpected_failure_becomes_internal_error(db, monkeypatch):
    async def boom(db, req):
        raise RuntimeError("disk on fire")

    method = dispatch.METHODS["GetThreads"]
    monkeypatch.setitem(dispatch.METHODS, "GetThreads", dispatch.RpcMethod(method.name, method.params, boom, method.description))

    resp = await handle_request(db, _req("GetThreads", {}))
    assert resp["error"] == {"code": INTERNAL_ERROR, "message": "Internal error"}
