"""
CNI configuration parsing for the Calico migration parser

The install-cni container writes the CNI network configuration from the
CNI_NETWORK_CONFIG environment variable. This module parses that document,
checks the plugins it chains, and works out which MTU the calico plugin uses.
"""

import json
import logging
from dataclasses import dataclass, field

from .errors import IncompatibleClusterError, MalformedInputError
from .models import HOST_PORTS_DISABLED, HOST_PORTS_ENABLED

log = logging.getLogger("calico-migration.cni")

CONTAINER_INSTALL_CNI = "install-cni"
MTU_PLACEHOLDER = "__CNI_MTU__"

# Stands in for the placeholder so the document stays valid JSON.
# Real MTUs are always positive.
_MTU_SENTINEL = -1

PRIMARY_PLUGIN = "calico"


@dataclass(frozen=True)
class TemplatedMTU:
    """The MTU is filled in by install-cni from the CNI_MTU variable."""


@dataclass(frozen=True)
class ExplicitMTU:
    """The MTU was written directly into the CNI config."""

    value: int


@dataclass(frozen=True)
class CalicoNetConf:
    """The parts of the calico plugin config the conversion cares about."""

    mtu: object = None
    ipv4_pools: list = field(default_factory=list)
    ipv6_pools: list = field(default_factory=list)
    floating_ips: bool = False
    ip_addrs_no_ipam: bool = False

    @classmethod
    def from_plugin(cls, plugin):
        """
        Build a CalicoNetConf from the calico plugin's JSON object.

        Args:
            plugin (dict): Decoded calico plugin config

        Returns:
            CalicoNetConf: The decoded config

        Raises:
            MalformedInputError: If a field has the wrong type
        """
        ipam = _section(plugin, "ipam")
        features = _section(plugin, "feature_control")
        return cls(
            mtu=_parse_mtu(plugin.get("mtu")),
            ipv4_pools=_list_field(ipam, "ipv4_pools"),
            ipv6_pools=_list_field(ipam, "ipv6_pools"),
            floating_ips=_bool_field(features, "floating_ips"),
            ip_addrs_no_ipam=_bool_field(features, "ip_addrs_no_ipam"),
        )


def _section(plugin, key):
    value = plugin.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedInputError(f"calico CNI config: '{key}' must be an object")
    return value


def _list_field(section, key):
    value = section.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedInputError(f"calico CNI config: '{key}' must be a list")
    return value


def _bool_field(section, key):
    value = section.get(key, False)
    if not isinstance(value, bool):
        raise MalformedInputError(f"calico CNI config: '{key}' must be a boolean")
    return value


def _parse_mtu(value):
    if value is None or value == 0:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedInputError(f"calico CNI config: invalid mtu {value!r}")
    if value == _MTU_SENTINEL:
        return TemplatedMTU()
    if value < 0:
        raise MalformedInputError(f"calico CNI config: invalid mtu {value}")
    return ExplicitMTU(value)


class PluginConfigSet:
    """
    The plugins of one CNI network configuration, keyed by plugin type.

    Args:
        plugins (list): Plugin config objects in chain order
    """

    def __init__(self, plugins):
        self.plugins = {}
        for plugin in plugins:
            self.plugins[plugin["type"]] = plugin

    def __contains__(self, name):
        return name in self.plugins

    def names(self):
        return sorted(self.plugins)

    def host_ports(self):
        """Host ports are enabled exactly when the portmap plugin is chained."""
        return HOST_PORTS_ENABLED if "portmap" in self.plugins else HOST_PORTS_DISABLED

    def primary(self):
        """
        Get the config of the calico plugin.

        Raises:
            IncompatibleClusterError: If no calico plugin is configured
        """
        if PRIMARY_PLUGIN not in self.plugins:
            raise IncompatibleClusterError("no calico CNI plugin configured")
        return CalicoNetConf.from_plugin(self.plugins[PRIMARY_PLUGIN])


def _conflist_plugins(doc):
    if not isinstance(doc, dict):
        raise MalformedInputError("CNI config is not a JSON object")
    plugins = doc.get("plugins")
    if not isinstance(plugins, list):
        raise MalformedInputError("error parsing configuration list: no 'plugins' key")
    if not plugins:
        raise MalformedInputError("error parsing configuration list: no plugins in list")
    for plugin in plugins:
        _check_plugin(plugin)
    return plugins


def _check_plugin(plugin):
    if not isinstance(plugin, dict):
        raise MalformedInputError("CNI plugin config is not a JSON object")
    if not isinstance(plugin.get("type"), str) or not plugin["type"]:
        raise MalformedInputError("CNI plugin config is missing 'type'")


def parse_cni_config(document):
    """
    Parse a CNI network configuration into its plugins.

    The document may be a conflist or a single plugin config, and may still
    contain the MTU placeholder that install-cni templates out.

    Args:
        document (str): CNI config as stored in CNI_NETWORK_CONFIG

    Returns:
        PluginConfigSet: The configured plugins

    Raises:
        MalformedInputError: If the document is neither a conflist nor a single config
    """
    document = document.replace(MTU_PLACEHOLDER, str(_MTU_SENTINEL))

    try:
        doc = json.loads(document)
    except ValueError as e:
        raise MalformedInputError(f"failed to parse CNI config: {e}") from e

    try:
        return PluginConfigSet(_conflist_plugins(doc))
    except MalformedInputError as conflist_err:
        log.debug(f"CNI config is not a conflist ({conflist_err}), trying single config")

    if isinstance(doc, dict):
        _check_plugin(doc)
        return PluginConfigSet([doc])
    raise MalformedInputError("CNI config is neither a conflist nor a single plugin config")


def check_plugins(plugins):
    """
    Reject plugin setups that have no equivalent in the new installation.

    Args:
        plugins (PluginConfigSet): Parsed CNI plugins

    Returns:
        CalicoNetConf: The calico plugin config

    Raises:
        IncompatibleClusterError: If an unsupported plugin or calico feature is in use
    """
    if "bandwidth" in plugins:
        raise IncompatibleClusterError("the bandwidth CNI plugin is not supported")

    conf = plugins.primary()
    if conf.ipv4_pools or conf.ipv6_pools:
        raise IncompatibleClusterError("IP pools in the calico CNI ipam config are not supported")
    if conf.floating_ips:
        raise IncompatibleClusterError("floating IPs are not supported")
    if conf.ip_addrs_no_ipam:
        raise IncompatibleClusterError("ip_addrs_no_ipam is not supported")
    return conf


def resolve_mtu(mtu, resolver, checklist):
    """
    Work out the MTU the calico plugin ends up with.

    Args:
        mtu: TemplatedMTU, ExplicitMTU or None from the calico plugin
        resolver (EnvResolver): Resolver for the calico-node pod spec
        checklist (Checklist): Checklist of the current run

    Returns:
        int or None: The MTU, or None if the config leaves it unset

    Raises:
        IncompatibleClusterError: If the MTU is templated but CNI_MTU is not set
        MalformedInputError: If CNI_MTU is not a positive integer
    """
    # CNI_MTU only feeds the placeholder, so it is claimed whichever way the MTU is set.
    checklist.mark_consumed(CONTAINER_INSTALL_CNI, "CNI_MTU")

    if isinstance(mtu, ExplicitMTU):
        log.debug(f"using MTU {mtu.value} hard-coded in the CNI config")
        return mtu.value
    if mtu is None:
        return None

    value, found = resolver.resolve(CONTAINER_INSTALL_CNI, "CNI_MTU")
    if not found:
        raise IncompatibleClusterError(
            f"CNI config uses {MTU_PLACEHOLDER} but CNI_MTU is not set on {CONTAINER_INSTALL_CNI}"
        )
    try:
        parsed = int(value.strip())
    except ValueError as e:
        raise MalformedInputError(f"invalid CNI_MTU value: {value!r}") from e
    if parsed <= 0:
        raise MalformedInputError(f"invalid CNI_MTU value: {value!r}")
    return parsed
