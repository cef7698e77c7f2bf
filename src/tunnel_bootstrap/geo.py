"""Best-effort node labelling from IP geolocation."""

from dataclasses import dataclass

import httpx

from .common.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_LABEL = "Unknown"
LOOKUP_TIMEOUT = 3.0


@dataclass(frozen=True)
class GeoProvider:
    """IP geolocation endpoint and the keys it answers with."""

    url: str
    country_key: str
    org_key: str


PROVIDERS = (
    GeoProvider("https://ipapi.co/json/", "country_code", "org"),
    GeoProvider("http://ip-api.com/json/", "countryCode", "org"),
)


def lookup_label(
    client: httpx.Client | None = None,
    providers: tuple[GeoProvider, ...] = PROVIDERS,
) -> str:
    """Return ``<country>_<org>`` for this host, or the placeholder.

    Providers are tried in order; any error or incomplete answer moves on to
    the next one. This never raises.

    Args:
        client: Optional httpx client (a short-lived one is created otherwise)
        providers: Providers in priority order

    Returns:
        Label such as ``US_Example Org``, or ``Unknown``
    """
    owns_client = client is None
    http = client or httpx.Client(timeout=LOOKUP_TIMEOUT)

    try:
        for provider in providers:
            label = _query(http, provider)
            if label:
                return label
    finally:
        if owns_client:
            http.close()

    logger.info("Geolocation unavailable, using placeholder label")
    return UNKNOWN_LABEL


def _query(client: httpx.Client, provider: GeoProvider) -> str | None:
    try:
        response = client.get(provider.url, timeout=LOOKUP_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("Geolocation lookup failed", url=provider.url, error=str(e))
        return None

    if not isinstance(data, dict):
        return None

    country = data.get(provider.country_key)
    org = data.get(provider.org_key)
    if not country or not org:
        return None
    return f"{country}_{org}"
