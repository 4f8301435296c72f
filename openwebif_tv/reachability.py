"""TCP reachability pre-check.

A receiver in deep standby may accept a connection and then never answer, or
sit behind a dead route where the socket connect hangs for a long time. The
HTTP client therefore probes the port with a hard timeout before every
request so an unreachable box fails fast.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

LOGGER = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 2.0


async def is_reachable(host: str, port: int, timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
    """Check if ``host:port`` accepts a TCP connection within ``timeout`` seconds.

    Never raises (apart from cancellation of the caller). The connection is
    closed gracefully on success; on timeout the pending connect is cancelled,
    which releases the socket.

    Args:
        host: IP address or hostname
        port: TCP port to check
        timeout: Connect timeout in seconds

    Returns:
        True if the port accepted the connection, False otherwise
    """
    try:
        _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (TimeoutError, asyncio.TimeoutError):
        LOGGER.debug("[probe] %s:%s timed out after %.1fs", host, port, timeout)
        return False
    except OSError as exc:
        LOGGER.debug("[probe] %s:%s refused: %s", host, port, exc)
        return False
    except Exception as exc:
        LOGGER.debug("[probe] Unexpected error probing %s:%s: %s", host, port, exc)
        return False

    writer.close()
    with contextlib.suppress(OSError, TimeoutError, asyncio.TimeoutError):
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    return True
