"""HTTP probes against services reached through a port-forward."""

import asyncio
import logging

import aiohttp
from yarl import URL

from ai_conformance.cluster.base import ClusterClient
from ai_conformance.errors import MetricsEndpointError

log = logging.getLogger(__name__)


def local_url(port: int, path: str) -> URL:
    """URL of a port-forwarded endpoint on localhost."""
    return URL.build(scheme="http", host="localhost", port=port, path=path)


async def fetch_endpoint(session: aiohttp.ClientSession, url: URL | str) -> str:
    """GET an endpoint and return a non-empty body.

    Raises:
        MetricsEndpointError: On transport errors, a non-200 status, or an
            empty response

    """
    try:
        async with session.get(url) as response:
            body = await response.text()
            status = response.status
    except aiohttp.ClientError as e:
        raise MetricsEndpointError(f"Cannot access endpoint {url}: {e}") from e

    if status != 200:
        raise MetricsEndpointError(
            f"Endpoint {url} returned HTTP {status} instead of 200"
        )
    if not body.strip():
        raise MetricsEndpointError(f"Endpoint {url} returned empty response")

    log.info("✅ Endpoint accessible (HTTP 200): %s", url)
    return body


async def fetch_metrics(
    cluster: ClusterClient,
    session: aiohttp.ClientSession,
    service: str,
    namespace: str,
    port: int,
    path: str = "/metrics",
    local_port: int | None = None,
) -> str:
    """Port-forward to a service and scrape its metrics endpoint.

    The port-forward is closed before returning, whatever the outcome.
    """
    log.info("ℹ️ Testing metrics endpoint: %s:%d%s", service, port, path)
    local_port = local_port or port
    async with await cluster.port_forward(service, namespace, local_port, port):
        return await fetch_endpoint(session, local_url(local_port, path))


async def generate_traffic(
    session: aiohttp.ClientSession,
    url: URL | str,
    count: int = 10,
    interval: float = 1.0,
) -> int:
    """Send requests to produce metrics; returns how many got a response."""
    log.info("ℹ️ Generating %d HTTP requests to %s...", count, url)
    answered = 0
    for index in range(count):
        try:
            async with session.get(url) as response:
                await response.read()
                answered += 1
        except aiohttp.ClientError as e:
            log.debug("Request %d to %s failed: %s", index + 1, url, e)
        if index < count - 1:
            await asyncio.sleep(interval)
    log.info("✅ Generated %d requests (%d answered)", count, answered)
    return answered
