import argparse
import asyncio
import json
import sys

import uvicorn

from agentnetwork.client import AgentNetworkClient
from agentnetwork.config import HOST, NETWORK_ENDPOINT, PORT
from agentnetwork.errors import AgentNetworkError


def _serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "agentnetwork.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
        timeout_graceful_shutdown=3,
    )
    return 0


async def _run_client_command(args: argparse.Namespace) -> object:
    async with AgentNetworkClient(args.endpoint) as net:
        if args.command == "thread":
            if args.action == "create":
                return {"thread_id": await net.create_thread(args.instruction, args.participant)}
            if args.action == "list":
                threads, next_cursor = await net.get_threads(args.cursor, args.limit)
                return {"threads": threads, "next_cursor": next_cursor}
            if args.action == "add-message":
                return {"message_id": await net.add_message(args.thread_id, args.sender, args.content)}
            if args.action == "messages":
                return [m async for m in net.iter_messages(args.thread_id, order=args.order)]
        if args.command == "agent" and args.action == "list":
            return await net.get_agent_runtime_info(all=True)
    raise ValueError(f"unsupported command: {args.command} {args.action}")


def _client_command(args: argparse.Namespace) -> int:
    try:
        result = asyncio.run(_run_client_command(args))
    except AgentNetworkError as e:
        print(json.dumps({"error": {"code": e.code, "message": e.message}}), file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentnetwork", description="AgentNetwork server and client")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP/JSON-RPC server (default)")
    serve.add_argument("--host", default=HOST, help="Bind host")
    serve.add_argument("--port", type=int, default=PORT, help="Bind port")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    serve.set_defaults(func=_serve)

    thread = sub.add_parser("thread", help="Work with threads on a running server")
    thread.add_argument("--endpoint", default=NETWORK_ENDPOINT, help="JSON-RPC endpoint URL")
    thread_sub = thread.add_subparsers(dest="action", required=True)

    create = thread_sub.add_parser("create", help="Create a thread")
    create.add_argument("--instruction", default="")
    create.add_argument("--participant", action="append", default=[], help="Repeat for each participant")

    lst = thread_sub.add_parser("list", help="List threads, newest first")
    lst.add_argument("--cursor", type=int, default=0)
    lst.add_argument("--limit", type=int, default=0)

    add = thread_sub.add_parser("add-message", help="Append a message to a thread")
    add.add_argument("thread_id", type=int)
    add.add_argument("sender")
    add.add_argument("content")

    msgs = thread_sub.add_parser("messages", help="Print every message of a thread")
    msgs.add_argument("thread_id", type=int)
    msgs.add_argument("--order", choices=["oldest", "latest"], default="oldest")
    thread.set_defaults(func=_client_command)

    agent = sub.add_parser("agent", help="Inspect the agent registry on a running server")
    agent.add_argument("--endpoint", default=NETWORK_ENDPOINT, help="JSON-RPC endpoint URL")
    agent_sub = agent.add_subparsers(dest="action", required=True)
    agent_sub.add_parser("list", help="List every registered agent")
    agent.set_defaults(func=_client_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["serve"])
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
