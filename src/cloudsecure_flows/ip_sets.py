"""
IP set utilities: CIDR/IP list files, containment and routability checks.
"""

import ipaddress
import logging
from pathlib import Path
from typing import Final, Iterable, Union

from .errors import FatalIOError, ParseError

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class ReservedRanges:
    """Address blocks that are never globally routable."""

    BLOCKS: Final[tuple[str, ...]] = (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
        "127.0.0.0/8",
        "224.0.0.0/4",
        "255.255.255.255/32",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
        "ff00::/8",
    )

    NETWORKS: Final[tuple[IPNetwork, ...]] = tuple(
        ipaddress.ip_network(block) for block in BLOCKS
    )


class IPSet:
    """Immutable set of networks loaded from one list file."""

    __slots__ = ("_networks", "source")

    def __init__(self, networks: Iterable[IPNetwork], source: str = ""):
        self._networks: tuple[IPNetwork, ...] = tuple(networks)
        self.source = source

    @property
    def networks(self) -> tuple[IPNetwork, ...]:
        return self._networks

    def __len__(self) -> int:
        return len(self._networks)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and contains(self, address)

    def __repr__(self) -> str:
        return f"IPSet(source={self.source!r}, networks={len(self._networks)})"


class IPListParser:
    """Parses newline-delimited CIDR/IP list files."""

    COMMENT_PREFIX = "#"

    def parse_entry(self, entry: str) -> IPNetwork:
        """Parse one entry as a CIDR block, falling back to a bare address."""
        if "/" in entry:
            return ipaddress.ip_network(entry, strict=False)

        address = ipaddress.ip_address(entry)
        return ipaddress.ip_network((address, address.max_prefixlen))

    def parse_file(self, path: str) -> IPSet:
        """Read a list file; any bad line aborts the whole load."""
        file_path = Path(path).resolve()
        logger.info(f"Loading IP list from {file_path}")

        networks: list[IPNetwork] = []
        try:
            with open(file_path, "r") as f:
                for line_number, line in enumerate(f, start=1):
                    entry = line.strip()
                    if not entry or entry.startswith(self.COMMENT_PREFIX):
                        continue
                    try:
                        networks.append(self.parse_entry(entry))
                    except ValueError:
                        raise ParseError(
                            f"Invalid IP or CIDR '{entry}' in {file_path} line {line_number}"
                        )
        except OSError as e:
            raise FatalIOError(f"Error opening IP list file {file_path}: {e}")

        logger.info(f"Loaded {len(networks)} entries from {file_path}")
        return IPSet(networks, source=str(file_path))


def _parse_address(address: str) -> Union[ipaddress.IPv4Address, ipaddress.IPv6Address, None]:
    try:
        return ipaddress.ip_address(address.strip())
    except (ValueError, AttributeError):
        return None


# Public API functions
def parse_list(path: str) -> IPSet:
    """Build an IPSet from a CIDR/IP list file."""
    return IPListParser().parse_file(path)


def contains(ip_set: IPSet, address: str) -> bool:
    """Check if address falls in any block of the set; unparseable is False."""
    if (ip := _parse_address(address)) is None:
        return False
    return any(ip in network for network in ip_set.networks)


def is_globally_routable(address: str) -> bool:
    """Check if address is outside every reserved range; unparseable is False."""
    if (ip := _parse_address(address)) is None:
        return False
    return not any(ip in network for network in ReservedRanges.NETWORKS)
