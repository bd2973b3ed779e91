"""Liveness probing for registered agents.

Each agent is probed independently and concurrently; a slow or unreachable
agent only costs its own timeout and never delays the verdict for the others.
"""

import asyncio
import logging
from typing import Iterable, Optional

import httpx

from agentnetwork.config import LIVENESS_PATH, LIVENESS_PROBE, LIVENESS_TIMEOUT
from agentnetwork.db.models import AgentRuntime

logger = logging.getLogger(__name__)


def probe_url(agent: AgentRuntime, path: str = LIVENESS_PATH) -> str:
    """Build the health URL for an agent's registered address."""
    addr = agent.addr.rstrip("/")
    if "://" not in addr:
        addr = f"{'https' if agent.secure else 'http'}://{addr}"
    return f"{addr}{path}"


async def _probe_http(client: httpx.AsyncClient, agent: AgentRuntime, timeout: float) -> bool:
    url = probe_url(agent)
    try:
        resp = await asyncio.wait_for(client.get(url), timeout=timeout)
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        logger.warning(f"Liveness probe failed for '{agent.name}' at {url}: {type(e).__name__}: {e}")
        return False
    if not resp.is_success:
        logger.warning(f"Liveness probe for '{agent.name}' at {url} returned HTTP {resp.status_code}")
        return False
    return True


async def probe_agents(
    agents: Iterable[AgentRuntime],
    timeout: float = LIVENESS_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, bool]:
    """Probe every agent concurrently and return ``{name: is_live}``."""
    agents = list(agents)
    if LIVENESS_PROBE == "record":
        return {a.name: True for a in agents}
    if not agents:
        return {}

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        results = await asyncio.gather(*(_probe_http(client, a, timeout) for a in agents))
    return {a.name: ok for a, ok in zip(agents, results)}
