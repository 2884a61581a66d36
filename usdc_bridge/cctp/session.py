"""HTTP session management for Circle's Iris API.

The :py:class:`IrisSession` carries the API URL so that downstream
functions do not need a separate ``api_base_url`` argument.

Requests are rate limited but never retried at the HTTP layer:
the attestation poller treats 404 as "not yet indexed" and any other
error as fatal, so transport retries would hide real failures.
"""

import logging

from requests import Session
from requests_ratelimiter import LimiterAdapter

from usdc_bridge.cctp.constants import IRIS_API_BASE_URL, IRIS_API_SANDBOX_URL

logger = logging.getLogger(__name__)

#: Default rate limit for Iris API requests per second.
#:
#: Iris allows 35 requests/second. Exceeding this triggers a
#: 5-minute block (HTTP 429).
DEFAULT_REQUESTS_PER_SECOND = 10

#: Default HTTP timeout for a single Iris request, seconds
DEFAULT_TIMEOUT = 30.0


class IrisSession(Session):
    """A :py:class:`requests.Session` subclass that carries the Iris API URL.

    Use :py:func:`create_iris_session` to create instances.
    """

    #: Iris API base URL (e.g. ``https://iris-api.circle.com``).
    api_url: str

    #: Timeout passed to every request
    timeout: float

    def __init__(self, api_url: str = IRIS_API_BASE_URL, timeout: float = DEFAULT_TIMEOUT):
        super().__init__()
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"<IrisSession api_url={self.api_url!r}>"


def create_iris_session(
    api_url: str = IRIS_API_BASE_URL,
    requests_per_second: int = DEFAULT_REQUESTS_PER_SECOND,
    timeout: float = DEFAULT_TIMEOUT,
) -> IrisSession:
    """Create a :py:class:`IrisSession` configured for the Iris API.

    Example::

        from usdc_bridge.cctp.constants import IRIS_API_SANDBOX_URL
        from usdc_bridge.cctp.session import create_iris_session

        # Mainnet (default)
        session = create_iris_session()

        # Testnets
        session = create_iris_session(api_url=IRIS_API_SANDBOX_URL)

    :param api_url:
        Iris API base URL. Use :py:data:`~usdc_bridge.cctp.constants.IRIS_API_SANDBOX_URL` for testnets.

    :param requests_per_second:
        Client side rate limit.

    :param timeout:
        HTTP timeout for each request.
    """
    session = IrisSession(api_url=api_url, timeout=timeout)
    adapter = LimiterAdapter(
        per_second=requests_per_second,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    logger.debug("Created Iris session for %s, %d req/s", api_url, requests_per_second)
    return session


def get_iris_api_url(testnet: bool) -> str:
    """Pick the Iris API matching the network."""
    return IRIS_API_SANDBOX_URL if testnet else IRIS_API_BASE_URL
