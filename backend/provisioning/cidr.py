"""Range Allocator — private IPv4 block validation and overlap detection.

Blocks are compared as inclusive integer intervals derived from the
network address and prefix; host bits in the input are ignored.
Only RFC1918 space is allocatable.
"""
import ipaddress
import logging
import re
from typing import Dict, Iterable, List, Tuple

from core.exceptions import ConflictError, InternalError, ValidationError

logger = logging.getLogger(__name__)

_CIDR_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})/(\d{1,2})$")

PRIVATE_RANGES = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)

# Third-octet layout of the /24 subnets carved out of a cluster VPC
_SUBNET_LAYOUT = {
    "public": (1, 2, 3),
    "private_app": (11, 12, 13),
    "private_db": (21, 22, 23),
}


def parse_network(cidr: str) -> ipaddress.IPv4Network:
    """Parse ``a.b.c.d/prefix`` into a network. Raises ValidationError."""
    if not isinstance(cidr, str):
        raise ValidationError("CIDR must be a string", details={"cidr": cidr})
    m = _CIDR_RE.match(cidr.strip())
    if not m:
        raise ValidationError(f"Malformed CIDR block: {cidr}", details={"cidr": cidr})
    *octets, prefix = (int(g) for g in m.groups())
    if any(o > 255 for o in octets) or prefix > 32:
        raise ValidationError(f"CIDR out of range: {cidr}", details={"cidr": cidr})
    try:
        return ipaddress.IPv4Network(cidr.strip(), strict=False)
    except ValueError as e:
        raise ValidationError(f"Malformed CIDR block: {cidr}", details={"cidr": cidr}) from e


def is_private(network: ipaddress.IPv4Network) -> bool:
    return any(network.subnet_of(r) for r in PRIVATE_RANGES)


def validate(cidr: str) -> ipaddress.IPv4Network:
    """Accept only well-formed blocks lying entirely inside RFC1918 space."""
    network = parse_network(cidr)
    if not is_private(network):
        raise ValidationError(
            "CIDR must be a valid private IPv4 CIDR block (RFC 1918)",
            details={"cidr": cidr},
        )
    return network


def bounds(cidr: str) -> Tuple[int, int]:
    network = parse_network(cidr)
    return int(network.network_address), int(network.broadcast_address)


def overlaps(a: str, b: str) -> bool:
    a_start, a_end = bounds(a)
    b_start, b_end = bounds(b)
    return a_start <= b_end and b_start <= a_end


def check_against_existing(candidate: str, existing: Iterable[str]) -> None:
    """Raise ConflictError listing every existing block the candidate overlaps.

    ``existing`` comes from the store; an unparseable stored block is
    corruption, not user error.
    """
    c_start, c_end = bounds(candidate)
    conflicts: List[str] = []
    for block in existing:
        try:
            start, end = bounds(block)
        except ValidationError as e:
            raise InternalError(
                f"Stored CIDR block is corrupt: {block}", details={"cidr": block},
            ) from e
        if c_start <= end and start <= c_end:
            conflicts.append(block)
    if conflicts:
        logger.info("CIDR overlap: candidate=%s conflicts=%s", candidate, conflicts)
        raise ConflictError(
            "CIDR overlaps with existing cluster networks",
            conflicts=conflicts,
            details={"cidr": candidate},
        )


def cidr_info(cidr: str) -> Dict[str, object]:
    network = parse_network(cidr)
    return {
        "network": str(network.network_address),
        "broadcast": str(network.broadcast_address),
        "prefix": network.prefixlen,
        "host_count": max(0, network.num_addresses - 2),
    }


def calculate_subnet_cidrs(vpc_cidr: str) -> Dict[str, List[str]]:
    """Carve the fixed /24 public, app and db subnets out of a VPC block.

    The VPC must be /24 or larger and must contain every generated subnet.
    """
    vpc = validate(vpc_cidr)
    if vpc.prefixlen > 24:
        raise ValidationError(
            f"VPC CIDR prefix length (/{vpc.prefixlen}) must be /24 or larger",
            details={"cidr": vpc_cidr},
        )
    first, second = str(vpc.network_address).split(".")[:2]
    subnets = {
        tier: [f"{first}.{second}.{third}.0/24" for third in thirds]
        for tier, thirds in _SUBNET_LAYOUT.items()
    }
    for tier_subnets in subnets.values():
        for subnet in tier_subnets:
            if not ipaddress.IPv4Network(subnet).subnet_of(vpc):
                raise ValidationError(
                    f"Generated subnet {subnet} is not within VPC CIDR {vpc_cidr}",
                    details={"cidr": vpc_cidr, "subnet": subnet},
                )
    logger.info("Subnets calculated: vpc=%s subnets=%s", vpc_cidr, subnets)
    return subnets
