import asyncio
import logging

from mcp.server.stdio import stdio_server

from agentnetwork.mcp_server import server


async def main():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options()
        )


if __name__ == "__main__":
    # Keep stdout a clean MCP JSON-RPC stream
    logging.getLogger().setLevel(logging.CRITICAL)
    asyncio.run(main())
