# HTTP helper for board connections
# Boards serve plain HTTP on the LAN; every probe gets its own short-lived session

import aiohttp
import logging
from typing import Optional

logger = logging.getLogger(__name__)

def create_device_session(timeout_seconds: float = 5, connect_timeout: Optional[float] = None) -> aiohttp.ClientSession:
    """
    Session for one bounded request against a board.
    ``timeout_seconds`` caps the whole request, ``connect_timeout`` only the TCP connect.
    """
    connector = aiohttp.TCPConnector(
        limit_per_host=2,    # the board's web server accepts very few sockets
        ssl=False,
        force_close=True,    # no keep-alive, the session is discarded after one request
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds, connect=connect_timeout),
    )
