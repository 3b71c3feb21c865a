"""
Responder client sync daemon
Watches connectivity and replays queued responder actions when it returns
"""
from dotenv import load_dotenv
load_dotenv()

import asyncio

import structlog

from .api_client import ResponderAPIClient
from .config import get_settings
from .dispatcher import ActionDispatcher
from .network_monitor import NetworkMonitor
from .offline_queue import OfflineQueue

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer()
    ]
)

logger = structlog.get_logger()


async def main() -> None:
    settings = get_settings()
    client = ResponderAPIClient()
    queue = OfflineQueue(settings.queue_path)
    monitor = NetworkMonitor(client)
    dispatcher = ActionDispatcher(client, queue, monitor)

    logger.info("responder_client_starting", backend=client.base_url, queued=len(queue))

    # Anything left from a previous session goes out on the first successful probe
    if await monitor.check() != "offline":
        await dispatcher.flush()

    try:
        await monitor.run()
    finally:
        logger.info("responder_client_stopping", queued=len(queue))


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
