"""Client identity derivation for rate limiting.

Turns request headers into the string key a limiter counts against. Kept
free of any web framework so the precedence rules can be tested directly.

Precedence:
1. ``X-Real-IP``
2. second entry of ``X-Forwarded-For``
3. first entry of ``X-Forwarded-For``
4. the fallback (the socket peer address, or the anonymous sentinel)
"""

from __future__ import annotations

from typing import Mapping

ANONYMOUS_CLIENT_KEY = "anonymous"

REAL_IP_HEADER = "x-real-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"

_IPV4_MAPPED_PREFIX = "::ffff:"


def normalize_ip(value: str) -> str:
    """Strip whitespace and the IPv6-mapped IPv4 prefix from an address.

    Examples:
        >>> normalize_ip("::ffff:192.0.2.7")
        '192.0.2.7'
        >>> normalize_ip(" 2001:db8::1 ")
        '2001:db8::1'
    """

    value = value.strip()
    if value.lower().startswith(_IPV4_MAPPED_PREFIX):
        value = value[len(_IPV4_MAPPED_PREFIX):]
    return value


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette's Headers already is not.
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _forwarded_candidates(value: str | None) -> list[str]:
    if not value:
        return []
    entries = [entry.strip() for entry in value.split(",")]
    # Second entry first, then the first one.
    return [entry for entry in entries[1:2] + entries[:1] if entry]


def derive_client_key(
    headers: Mapping[str, str],
    fallback: str | None = ANONYMOUS_CLIENT_KEY,
) -> str:
    """Derive the rate limit key for a request.

    Args:
        headers: Request headers (any mapping; lookup is case-insensitive).
        fallback: Identity to use when no proxy header is usable. Callers
            pass the direct connection address when they have one.

    Returns:
        Normalized client key. Never empty.

    Examples:
        >>> derive_client_key({"x-real-ip": "203.0.113.5"})
        '203.0.113.5'
        >>> derive_client_key({"x-forwarded-for": "10.0.0.1, 198.51.100.2"})
        '198.51.100.2'
        >>> derive_client_key({})
        'anonymous'
    """

    candidates: list[str] = []

    real_ip = _header(headers, REAL_IP_HEADER)
    if real_ip:
        candidates.append(real_ip)

    candidates.extend(_forwarded_candidates(_header(headers, FORWARDED_FOR_HEADER)))

    if fallback:
        candidates.append(fallback)

    for candidate in candidates:
        key = normalize_ip(candidate)
        if key:
            return key

    return ANONYMOUS_CLIENT_KEY
