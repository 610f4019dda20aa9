"""
Output model of the Calico migration parser
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .cidr import IPPool

HOST_PORTS_ENABLED = "Enabled"
HOST_PORTS_DISABLED = "Disabled"


@dataclass(frozen=True)
class NodeAddressAutodetection:
    """
    How calico-node picks the node address for one IP family.

    Exactly one of the fields is set.
    """

    first_found: Optional[bool] = None
    interface: Optional[str] = None
    can_reach: Optional[str] = None
    skip_interface: Optional[str] = None

    def to_dict(self):
        out = {}
        if self.first_found is not None:
            out["firstFound"] = self.first_found
        if self.interface is not None:
            out["interface"] = self.interface
        if self.can_reach is not None:
            out["canReach"] = self.can_reach
        if self.skip_interface is not None:
            out["skipInterface"] = self.skip_interface
        return out


@dataclass(frozen=True)
class ExtractedConfig:
    """
    Configuration pulled from an existing install.

    Fields left as None were not set by the install and are filled in by the
    defaulting that runs afterwards. ip_pools is None when unset and an empty
    tuple when the install explicitly wants no pools.
    """

    node_address_autodetection_v4: Optional[NodeAddressAutodetection] = None
    node_address_autodetection_v6: Optional[NodeAddressAutodetection] = None
    mtu: Optional[int] = None
    host_ports: Optional[str] = None
    ip_pools: Optional[Tuple[IPPool, ...]] = None
    ipv4_encapsulation: Optional[str] = None
    felix_env_vars: Tuple[dict, ...] = field(default_factory=tuple)

    def to_dict(self):
        """
        Convert the config to a JSON-friendly dict, dropping unset fields.

        Returns:
            dict: camelCase representation of the config
        """
        out = {}
        if self.node_address_autodetection_v4 is not None:
            out["nodeAddressAutodetectionV4"] = self.node_address_autodetection_v4.to_dict()
        if self.node_address_autodetection_v6 is not None:
            out["nodeAddressAutodetectionV6"] = self.node_address_autodetection_v6.to_dict()
        if self.mtu is not None:
            out["mtu"] = self.mtu
        if self.host_ports is not None:
            out["hostPorts"] = self.host_ports
        if self.ip_pools is not None:
            out["ipPools"] = [pool.to_dict() for pool in self.ip_pools]
        if self.ipv4_encapsulation is not None:
            out["ipv4Encapsulation"] = self.ipv4_encapsulation
        out["felixEnvVars"] = [dict(env) for env in self.felix_env_vars]
        return out
