"""
Reachability check of a tunnel from the relay side
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)


async def check_url(
    url: str,
    max_retries: int = 10,
    retry_interval: float = 2.0,
    timeout: float = 5.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Optional[str]:
    """GET a URL until it answers with a non-empty body

    Certificate verification is disabled; relays commonly serve
    self-signed certificates.

    Args:
        url: Public URL exposed through the tunnel
        max_retries: Number of attempts
        retry_interval: Seconds between attempts
        timeout: Per-attempt timeout in seconds

    Returns:
        The response body, or None if every attempt failed
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    connector = aiohttp.TCPConnector(ssl=False)
    async with aiohttp.ClientSession(
        timeout=client_timeout, connector=connector
    ) as session:
        for attempt in range(1, max_retries + 1):
            logger.info(f"Attempt {attempt}: GET {url}")
            try:
                async with session.get(url) as response:
                    body = await response.text()
                if body:
                    logger.info(f"Response received: {body.strip()}")
                    return body
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"Attempt {attempt} error: {e}")

            if attempt < max_retries:
                logger.info(
                    f"Attempt {attempt} failed. "
                    f"Retrying in {retry_interval:g} seconds..."
                )
                await sleep(retry_interval)

    logger.error(f"No response from {url} after {max_retries} attempts.")
    return None
