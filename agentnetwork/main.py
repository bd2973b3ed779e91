"""
AgentNetwork main entry point.

Starts a FastAPI HTTP server that:
  1. Serves the JSON-RPC 2.0 endpoint at RPC_PATH (default /rpc)
  2. Mounts the MCP Server (SSE) at /mcp for agents that speak MCP
  3. Reports liveness at /health
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from mcp.server.sse import SseServerTransport

from agentnetwork.config import (
    AGENT_STALE_SWEEP_ENABLED,
    AGENT_STALE_TIMEOUT,
    AGENT_SWEEP_INTERVAL,
    HOST,
    LOG_LEVEL,
    NETWORK_VERSION,
    PORT,
    RPC_PATH,
)
from agentnetwork.db import crud
from agentnetwork.db.database import close_db, get_db
from agentnetwork.errors import ParseError
from agentnetwork.mcp_server import server as mcp_server
from agentnetwork.rpc.dispatch import envelope, handle_payload

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("agentnetwork")


async def agent_sweep_loop(interval: float = AGENT_SWEEP_INTERVAL, max_age: int = AGENT_STALE_TIMEOUT) -> None:
    """Periodically drop agents that have not been seen live within ``max_age`` seconds."""
    logger.info("Starting stale-agent sweep")
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                db = await get_db()
                await crud.agent_prune_stale(db, max_age)
            except Exception as e:
                logger.error(f"Stale-agent sweep failed: {type(e).__name__}: {e}")
    finally:
        logger.info("Stale-agent sweep stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize DB and background sweep
    await get_db()
    sweep_task = asyncio.create_task(agent_sweep_loop()) if AGENT_STALE_SWEEP_ENABLED else None
    logger.info(f"AgentNetwork running at http://{HOST}:{PORT}{RPC_PATH}")
    yield
    # Shutdown: stop the sweep, close DB
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await close_db()


app = FastAPI(
    title="AgentNetwork",
    description="Coordination protocol for agents sharing conversation threads.",
    version=NETWORK_VERSION,
    lifespan=lifespan,
)


# ─────────────────────────────────────────────
# JSON-RPC endpoint
# ─────────────────────────────────────────────

@app.post(RPC_PATH)
async def rpc_endpoint(request: Request):
    """Single JSON-RPC 2.0 endpoint; every protocol method is served here."""
    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return JSONResponse(envelope(None, error=ParseError(f"Parse error: {e}").to_dict()))

    db = await get_db()
    result = await handle_payload(db, payload)
    if result is None:
        return Response(status_code=204)
    return JSONResponse(result)


# ─────────────────────────────────────────────
# MCP SSE Transport (mounted at /mcp)
# ─────────────────────────────────────────────

sse_transport = SseServerTransport("/mcp/messages/")


class _SseCompletedResponse:
    """
    Returned from mcp_sse_endpoint after connect_sse() exits.

    The SSE transport has already written the whole HTTP response through
    request._send, so this must not emit any further ASGI messages.
    """
    async def __call__(self, scope, receive, send):
        pass


@app.get("/mcp/sse")
async def mcp_sse_endpoint(request: Request):
    """MCP SSE endpoint for agents that talk to the network as MCP tools."""
    try:
        async with sse_transport.connect_sse(
            request.scope, request.receive, request._send
        ) as streams:
            await mcp_server.run(
                streams[0], streams[1],
                mcp_server.create_initialization_options(),
            )
    except Exception as exc:
        # Mostly normal client disconnects.
        logger.debug("MCP SSE session ended: %s: %s", type(exc).__name__, exc)
    return _SseCompletedResponse()


# Raw ASGI app: the transport answers 202 Accepted itself.
app.mount("/mcp/messages/", app=sse_transport.handle_post_message)


class _AsgiDisconnectFilter(logging.Filter):
    """Drops uvicorn 'Exception in ASGI application' records caused by MCP client disconnects."""
    _NOISE = (
        "Unexpected ASGI message 'http.response.start'",
        "Expected ASGI message 'http.response.body'",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(n in record.getMessage() for n in self._NOISE)


for _ln in ("uvicorn.error", "uvicorn"):
    logging.getLogger(_ln).addFilter(_AsgiDisconnectFilter())


# ─────────────────────────────────────────────
# Health check
# ─────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok", "service": "AgentNetwork"}


# ─────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run("agentnetwork.main:app", host=HOST, port=PORT, reload=True)
