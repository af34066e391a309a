import ipaddress
from urllib.parse import urlsplit

from src.errors import InvalidSubscriptionError

UNSAFE_HOSTNAMES = {"localhost", "localhost.localdomain"}


def _is_private_host(hostname: str) -> bool:
    if hostname.lower() in UNSAFE_HOSTNAMES:
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
    )


def validate_target_url(url: str, block_private_hosts: bool = True) -> str:
    """Check that ``url`` is an absolute http(s) URL a webhook may be sent to.

    Returns the URL unchanged, raises InvalidSubscriptionError otherwise.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidSubscriptionError("target", "URL is required")

    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise InvalidSubscriptionError("target", f"unsupported scheme in {url!r}")
    if not parts.hostname:
        raise InvalidSubscriptionError("target", f"missing host in {url!r}")

    if block_private_hosts and _is_private_host(parts.hostname):
        raise InvalidSubscriptionError("target", f"blocked unsafe host {parts.hostname!r}")

    return url
