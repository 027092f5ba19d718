"""Entry point: ``python -m nr_assistant.mcp``

Serves the assistant's MCP tools and prompts over stdio.

Environment variables
---------------------
NR_ASSISTANT_MODEL_URL        Classifier endpoint (optional; rules-only without it).
NR_ASSISTANT_VOCABULARY_URL   Completions vocabulary JSON (optional).
NR_ASSISTANT_TIMEOUT          Request timeout in milliseconds (default ``60000``).
NR_ASSISTANT_LOG_LEVEL        Python log level (default ``WARNING``).
"""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.environ.get("NR_ASSISTANT_LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

from nr_assistant.completions.loader import load_predictor_or_rules  # noqa: E402
from nr_assistant.config import AssistantSettings  # noqa: E402
from nr_assistant.mcp.server import create_server  # noqa: E402
from nr_assistant.mcp.tools import AssistantMCPTools  # noqa: E402

logger = logging.getLogger("nr_assistant.mcp")


async def main() -> None:
    settings = AssistantSettings.from_env()
    predictor, scorer = await load_predictor_or_rules(settings)
    try:
        server = create_server(AssistantMCPTools(predictor))

        from mcp.server.stdio import stdio_server  # noqa: E402

        async with stdio_server() as (read_stream, write_stream):
            init_options = server.create_initialization_options()
            await server.run(read_stream, write_stream, init_options)
    finally:
        if scorer is not None:
            await scorer.close()


if __name__ == "__main__":
    asyncio.run(main())
