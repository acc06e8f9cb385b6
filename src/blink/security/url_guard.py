"""SSRF guard for user-supplied execution URLs.

The decision is made on resolved IP addresses, not on the hostname: a
public-looking name can resolve to anything. Every call resolves afresh;
verdicts are never cached because they depend on current DNS state.

Open risk: the address checked here is not pinned for the connect step, so
a DNS answer that changes between validation and connect (rebinding) is not
caught.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from blink.errors import UrlBlockedError

Resolver = Callable[[str], list[str]]
IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

ALLOWED_SCHEMES = frozenset({"http", "https"})
LOCALHOST_ALIASES = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0", "::", "[::]"})

# Exact matches, reported separately even though they sit inside link-local space.
METADATA_ADDRESSES = frozenset(
    {
        ipaddress.ip_address("169.254.169.254"),  # AWS, Azure, GCP
        ipaddress.ip_address("fd00:ec2::254"),  # AWS IMDSv2 over IPv6
    }
)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

BLOCKED_NETWORKS: tuple[tuple[str, tuple[IPNetwork, ...]], ...] = (
    (
        "loopback",
        (ipaddress.ip_network("127.0.0.0/8"), ipaddress.ip_network("::1/128")),
    ),
    (
        "unspecified",
        (ipaddress.ip_network("0.0.0.0/32"), ipaddress.ip_network("::/128")),
    ),
    (
        "link-local",
        (ipaddress.ip_network("169.254.0.0/16"), ipaddress.ip_network("fe80::/10")),
    ),
    (
        "link-local multicast",
        (ipaddress.ip_network("224.0.0.0/24"), ipaddress.ip_network("ff02::/16")),
    ),
    (
        "private",
        (
            ipaddress.ip_network("10.0.0.0/8"),
            ipaddress.ip_network("172.16.0.0/12"),
            ipaddress.ip_network("192.168.0.0/16"),
        ),
    ),
    ("unique-local", (ipaddress.ip_network("fc00::/7"),)),
    ("shared address space", (ipaddress.ip_network("100.64.0.0/10"),)),
)


class Verdict(str, Enum):
    ALLOWED = "allowed"
    BLOCKED_SCHEME = "blocked_scheme"
    BLOCKED_HOST = "blocked_host"
    BLOCKED_IP = "blocked_ip"
    RESOLUTION_FAILED = "resolution_failed"


@dataclass(frozen=True, slots=True)
class SafetyVerdict:
    outcome: Verdict
    reason: str = ""
    address: str | None = None
    address_class: str | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Verdict.ALLOWED

    def raise_for_outcome(self) -> None:
        if not self.allowed:
            raise UrlBlockedError(self)


def is_localhost_alias(hostname: str) -> bool:
    host = hostname.lower().rstrip(".")
    return host in LOCALHOST_ALIASES or host.startswith("127.")


def classify_address(address: IPAddress) -> str | None:
    """Return the blocked class an address belongs to, or None if it is public."""
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    if address in METADATA_ADDRESSES:
        return "cloud metadata"
    for name, networks in BLOCKED_NETWORKS:
        if any(address in net for net in networks):
            return name
    return None


def resolve_host(hostname: str) -> list[str]:
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    addresses: list[str] = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        # IPv6 sockaddr may carry a zone suffix ("fe80::1%eth0")
        value = str(sockaddr[0]).split("%", 1)[0]
        if value not in addresses:
            addresses.append(value)
    return addresses


def validate_url(
    url: str,
    *,
    allow_localhost: bool,
    allow_private_ips: bool,
    resolver: Resolver | None = None,
) -> SafetyVerdict:
    try:
        parsed = urlsplit(url.strip())
        hostname = parsed.hostname or ""
        _ = parsed.port
    except ValueError as exc:
        return SafetyVerdict(Verdict.RESOLUTION_FAILED, f"invalid URL: {exc}")

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return SafetyVerdict(
            Verdict.BLOCKED_SCHEME, f"unsupported URL scheme: {parsed.scheme or '(none)'}"
        )
    if not hostname:
        return SafetyVerdict(Verdict.RESOLUTION_FAILED, "URL must contain a hostname")
    if is_localhost_alias(hostname) and not allow_localhost:
        return SafetyVerdict(Verdict.BLOCKED_HOST, "requests to localhost are not allowed")

    lookup = resolver or resolve_host
    try:
        resolved = lookup(hostname)
    except (OSError, UnicodeError) as exc:
        return SafetyVerdict(Verdict.RESOLUTION_FAILED, f"failed to resolve hostname: {exc}")
    if not resolved:
        return SafetyVerdict(Verdict.RESOLUTION_FAILED, "hostname resolved to no addresses")

    for raw in resolved:
        try:
            address = ipaddress.ip_address(raw)
        except ValueError:
            return SafetyVerdict(
                Verdict.RESOLUTION_FAILED, f"resolver returned invalid address: {raw}"
            )
        address_class = classify_address(address)
        if address_class is not None and not allow_private_ips:
            return SafetyVerdict(
                Verdict.BLOCKED_IP,
                f"requests to private IP ranges are not allowed: {address} ({address_class})",
                address=str(address),
                address_class=address_class,
            )
    return SafetyVerdict(Verdict.ALLOWED)


@dataclass(frozen=True, slots=True)
class UrlPolicy:
    """Policy flags bound together so every hop is checked the same way."""

    allow_localhost: bool = False
    allow_private_ips: bool = False
    resolver: Resolver | None = None

    def check(self, url: str) -> SafetyVerdict:
        return validate_url(
            url,
            allow_localhost=self.allow_localhost,
            allow_private_ips=self.allow_private_ips,
            resolver=self.resolver,
        )

    async def acheck(self, url: str) -> SafetyVerdict:
        # getaddrinfo blocks; keep it off the event loop
        return await asyncio.to_thread(self.check, url)
