"""
examples/mention_responder.py: Simulated "Responder" Agent

The responder:
1. Registers itself with the network
2. Re-registers every HEARTBEAT_INTERVAL seconds. Nothing serves its /health,
   so this keeps last_live_at fresh and the stale-agent sweep leaves it alone
3. Polls IsMentionedOnce for threads that address it exactly once
4. Reads the thread, waits a short "thinking" delay, then posts a reply
5. Deregisters on Ctrl+C

Usage:
    agentnetwork serve                       # terminal 1
    python -m examples.mention_responder     # terminal 2
    agentnetwork thread create --instruction "pairing"
    agentnetwork thread add-message 1 USER "hey @responder, any tips?"
"""
import asyncio
import random

from agentnetwork.client import AgentNetworkClient
from agentnetwork.config import NETWORK_ENDPOINT
from agentnetwork.errors import AgentNetworkError

MY_NAME = "responder"
MY_ADDR = "http://127.0.0.1:9181"
MY_INFO = {
    "name": MY_NAME,
    "role": "assistant",
    "description": "Answers threads that mention @responder.",
}
# Must stay below the server's AGENT_STALE_TIMEOUT (150 s by default)
HEARTBEAT_INTERVAL = 60

# Pre-canned expert replies (no LLM needed for the demo)
EXPERT_REPLIES = [
    "For I/O-bound work, `asyncio` with `await` is ideal. For CPU-bound, use a process pool.",
    "Prefer `async with` for cleanup. It releases resources even when the body raises.",
    "Test async code with `pytest-asyncio` and keep it deterministic by avoiding real sleeps.",
    "Always put a timeout on awaits that cross the network: `asyncio.wait_for(coro, timeout=N)`.",
]


async def heartbeat_loop(net: AgentNetworkClient):
    """Re-register periodically so the registry keeps counting us as live."""
    while True:
        await asyncio.sleep(HEARTBEAT_INTERVAL)
        try:
            await net.register_agent(MY_ADDR, [MY_INFO])
        except AgentNetworkError as e:
            print(f"[responder] Heartbeat failed: {e}")


async def main():
    async with AgentNetworkClient(NETWORK_ENDPOINT) as net:
        await net.register_agent(MY_ADDR, [MY_INFO])
        print(f"[responder] Registered as '{MY_NAME}' at {MY_ADDR} (Ctrl+C to stop)")

        heartbeat = asyncio.create_task(heartbeat_loop(net))
        answered: set[int] = set()
        reply_index = 0
        try:
            while True:
                for thread_id in await net.is_mentioned_once(MY_NAME):
                    if thread_id in answered:
                        continue
                    messages, _ = await net.get_messages(thread_id, order="latest", limit=1)
                    if messages:
                        print(f"[responder] <- [{thread_id}] {messages[0]['sender']}: {messages[0]['content'][:80]}")

                    # "Thinking" delay (simulates LLM processing time)
                    await asyncio.sleep(random.uniform(1.0, 2.0))

                    reply = EXPERT_REPLIES[reply_index % len(EXPERT_REPLIES)]
                    reply_index += 1
                    await net.add_message(thread_id, MY_NAME, reply)
                    answered.add(thread_id)
                    print(f"[responder] -> [{thread_id}] {reply[:80]}")
                await asyncio.sleep(1)
        finally:
            heartbeat.cancel()
            await net.deregister_agent([MY_NAME])


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[responder] Stopped.")
