"""
CIDR helpers for the Calico migration parser

This module checks whether IP pools fit inside the pod network CIDRs configured
on the underlying platform, and builds pools from those CIDRs when the existing
install did not configure any.
"""

import ipaddress
import logging
from dataclasses import dataclass

from .errors import IncompatibleClusterError, MalformedInputError

log = logging.getLogger("calico-migration.cidr")


def parse_cidr(cidr):
    """
    Parse a CIDR string into an ip_network.

    Host bits are masked off, so "10.0.0.5/8" parses as 10.0.0.0/8.

    Args:
        cidr (str): CIDR in IPv4 or IPv6 notation

    Returns:
        ipaddress.IPv4Network or ipaddress.IPv6Network: Parsed network

    Raises:
        MalformedInputError: If the string is not a CIDR
    """
    if not isinstance(cidr, str) or "/" not in cidr:
        raise MalformedInputError(f"invalid CIDR address: {cidr!r}")
    try:
        return ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as e:
        raise MalformedInputError(f"invalid CIDR address: {cidr!r}") from e


@dataclass(frozen=True)
class IPPool:
    """An IP pool to create in the new installation."""

    cidr: str
    version: int

    @classmethod
    def from_cidr(cls, cidr):
        network = parse_cidr(cidr)
        return cls(cidr=cidr.strip(), version=network.version)

    def to_dict(self):
        return {"cidr": self.cidr}


def contained_in(outer, inner):
    """
    Check that every address of the inner CIDR is within the outer CIDR.

    The inner network is contained when the outer network holds its base address
    and its prefix is at least as long as the outer one, so it is never larger.
    IPv4 and IPv6 go through the same check.

    Args:
        outer (str): Containing CIDR, e.g. the platform pod network
        inner (str): Contained CIDR, e.g. an IP pool

    Returns:
        bool: True if inner is within outer. Malformed input is never contained.
    """
    try:
        outer_net = parse_cidr(outer)
        inner_net = parse_cidr(inner)
    except MalformedInputError:
        return False

    if outer_net.version != inner_net.version:
        return False
    return inner_net.network_address in outer_net and inner_net.prefixlen >= outer_net.prefixlen


def merge_platform_pod_cidrs(pools, platform_cidrs):
    """
    Merge the configured IP pools with the pod CIDRs of the underlying platform.

    Args:
        pools (list or None): Pools already configured. None means unset and lets
            the platform CIDRs supply them; an empty list means no pools are wanted.
        platform_cidrs (list): Pod network CIDRs reported by the platform, in order

    Returns:
        list or None: The pools to use

    Raises:
        IncompatibleClusterError: If a configured pool is outside every platform CIDR
    """
    if pools is None:
        if not platform_cidrs:
            # Leave it to the defaulting that runs after conversion.
            return None

        # Only one pool per IP family is supported, so take the first of each.
        merged = []
        v4_found = False
        v6_found = False
        for cidr in platform_cidrs:
            try:
                pool = IPPool.from_cidr(cidr)
            except MalformedInputError as e:
                log.warning(f"Failed to parse platform's pod network CIDR: {e}")
                continue

            if pool.version == 6:
                if v6_found:
                    continue
                v6_found = True
            else:
                if v4_found:
                    continue
                v4_found = True
            merged.append(pool)

            if v4_found and v6_found:
                break
        # Nothing usable is the same as nothing reported, not an explicit empty list.
        return merged or None

    if len(pools) == 0:
        return pools

    for pool in pools:
        if not any(contained_in(cidr, pool.cidr) for cidr in platform_cidrs):
            raise IncompatibleClusterError(
                f"IPPool {pool.cidr} is not within the platform's configured pod network CIDR(s)"
            )
    return pools
