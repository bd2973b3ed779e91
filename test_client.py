import httpx
import pytest
import pytest_asyncio

from agentnetwork.client import AgentNetworkClient
from agentnetwork.config import RPC_PATH
from agentnetwork.db.database import close_db
from agentnetwork.errors import InvalidRequest, LivenessError, NotFound, TransportError
from agentnetwork.main import app


@pytest_asyncio.fixture
async def net(app_db):
    client = AgentNetworkClient(f"http://testserver{RPC_PATH}", transport=httpx.ASGITransport(app=app))
    yield client
    await client.aclose()
    await close_db()


@pytest.mark.asyncio
async def test_client_thread_and_message_flow(net):
    tid = await net.create_thread("pair on the parser", participants=["alice"], metadata={"repo": "core"})
    assert (await net.get_thread(tid))["metadata"] == {"repo": "core"}

    ids = [await net.add_message(tid, "alice" if i % 2 else "USER", f"m{i}") for i in range(5)]
    assert await net.get_num_messages(tid) == 5

    streamed = [m async for m in net.iter_messages(tid, limit=2)]
    assert [m["id"] for m in streamed] == ids

    streamed = [m async for m in net.iter_messages(tid, order="latest", limit=3)]
    assert [m["id"] for m in streamed] == list(reversed(ids))

    await net.delete_message(ids[0])
    messages, cursor = await net.get_messages(tid)
    assert [m["id"] for m in messages] == ids[1:]
    assert cursor == 0

    threads, next_cursor = await net.get_threads()
    assert [t["id"] for t in threads] == [tid]
    assert next_cursor is None


@pytest.mark.asyncio
async def test_client_raises_typed_errors(net):
    with pytest.raises(NotFound):
        await net.get_thread(12345)

    tid = await net.create_thread(participants=["alice"])
    with pytest.raises(InvalidRequest):
        await net.add_message(tid, "mallory", "let me in")


@pytest.mark.asyncio
async def test_client_agent_registry(net, record_liveness):
    await net.register_agent("http://agents:1", [{"name": "alice"}, {"name": "bob", "role": "critic"}])
    await net.check_live(["alice", "bob"])

    info = await net.get_agent_runtime_info(all=True)
    assert [a["info"]["name"] for a in info] == ["alice", "bob"]
    assert info[1]["info"]["role"] == "critic"
    assert info[0]["last_live_at"] is not None

    tid = await net.create_thread()
    await net.add_message(tid, "USER", "@bob thoughts?")
    assert await net.is_mentioned_once("bob") == [tid]

    await net.deregister_agent(["bob"])
    with pytest.raises(LivenessError) as exc:
        await net.check_live(["alice", "bob"])
    assert exc.value.unreachable == ["bob"]
    assert [a["info"]["name"] for a in await net.get_agent_runtime_info(["alice", "bob"])] == ["alice"]


@pytest.mark.asyncio
async def test_client_http_failures_raise_transport_error():
    async with AgentNetworkClient(
        "http://network/rpc", transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
    ) as net:
        with pytest.raises(TransportError) as exc:
            await net.get_thread(1)
        assert exc.value.status_code == 502

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with AgentNetworkClient("http://network/rpc", transport=httpx.MockTransport(refuse)) as net:
        with pytest.raises(TransportError):
            await net.create_thread()
