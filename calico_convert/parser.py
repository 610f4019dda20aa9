"""
Conversion of an existing Calico install

This module reads the calico-node DaemonSet of a Calico install that is not
managed by an operator and produces an ExtractedConfig describing an equivalent
installation. Each handler claims the environment variables it understands;
if any variable is left over at the end the install is considered incompatible,
since there is no way to know whether dropping it would change behavior.
"""

import logging

from .cidr import IPPool, merge_platform_pod_cidrs
from .cni import CONTAINER_INSTALL_CNI, check_plugins, parse_cni_config, resolve_mtu
from .env import Checklist, EnvResolver, find_container
from .errors import IncompatibleClusterError, MalformedInputError, ObjectNotFoundError
from .models import ExtractedConfig, NodeAddressAutodetection
from .platform import PLATFORMS

log = logging.getLogger("calico-migration.parser")

CONTAINER_NODE = "calico-node"
NODE_DAEMONSET = "calico-node"

FELIX_PREFIX = "FELIX_"

# Variables that have no effect on the converted install.
IGNORED_ENV_VARS = {
    CONTAINER_NODE: ["WAIT_FOR_DATASTORE", "CLUSTER_TYPE", "NODENAME", "CALICO_DISABLE_FILE_LOGGING"],
    CONTAINER_INSTALL_CNI: ["CNI_CONF_NAME", "KUBERNETES_NODE_NAME", "SLEEP"],
}

AUTODETECTION_METHOD_FIRST = "first-found"
AUTODETECTION_METHOD_CAN_REACH = "can-reach="
AUTODETECTION_METHOD_INTERFACE = "interface="
AUTODETECTION_METHOD_SKIP_INTERFACE = "skip-interface="

# Values of CALICO_IPV4POOL_IPIP / CALICO_IPV4POOL_VXLAN.
_ENCAP_MODES = {"always": "", "crosssubnet": "CrossSubnet"}
_ENCAP_OFF = {"", "never", "off", "false"}


class Components:
    """
    The objects of the existing install that the handlers read from.

    Args:
        node (dict): The calico-node DaemonSet
        resolver (EnvResolver): Resolver over the DaemonSet's pod spec
        fetcher: Object fetcher, for handlers that read other objects
        namespace (str): Namespace of the install
        platform: Pod network discovery function, or None
    """

    def __init__(self, node, resolver, fetcher, namespace, platform=None):
        self.node = node
        self.resolver = resolver
        self.fetcher = fetcher
        self.namespace = namespace
        self.platform = platform

    def get_env(self, checklist, container, name):
        return self.resolver.get(checklist, container, name)


def get_auto_detection(method, var_name="IP_AUTODETECTION_METHOD"):
    """
    Parse a calico-node address autodetection method.

    Args:
        method (str): Value of IP_AUTODETECTION_METHOD or IP6_AUTODETECTION_METHOD
        var_name (str): Variable the value came from, for the error message

    Returns:
        NodeAddressAutodetection: The equivalent autodetection setting

    Raises:
        MalformedInputError: If the method is not recognized
    """
    if method is None or method == "" or method == AUTODETECTION_METHOD_FIRST:
        return NodeAddressAutodetection(first_found=True)

    if method.startswith(AUTODETECTION_METHOD_INTERFACE):
        return NodeAddressAutodetection(interface=method[len(AUTODETECTION_METHOD_INTERFACE):])

    if method.startswith(AUTODETECTION_METHOD_CAN_REACH):
        return NodeAddressAutodetection(can_reach=method[len(AUTODETECTION_METHOD_CAN_REACH):])

    if method.startswith(AUTODETECTION_METHOD_SKIP_INTERFACE):
        return NodeAddressAutodetection(skip_interface=method[len(AUTODETECTION_METHOD_SKIP_INTERFACE):])

    raise MalformedInputError(f"unrecognized option for {var_name}: {method}")


def handle_core(comps, checklist, cfg):
    ds_type = comps.get_env(checklist, CONTAINER_NODE, "DATASTORE_TYPE")
    if ds_type is not None and ds_type != "kubernetes":
        raise IncompatibleClusterError(
            f"unexpected DATASTORE_TYPE: '{ds_type}'. Only 'kubernetes' is supported."
        )

    for container, names in IGNORED_ENV_VARS.items():
        for name in names:
            checklist.mark_consumed(container, name)


def handle_network(comps, checklist, cfg):
    net_backend = comps.get_env(checklist, CONTAINER_NODE, "CALICO_NETWORKING_BACKEND")
    if net_backend and net_backend != "bird":
        raise IncompatibleClusterError("only CALICO_NETWORKING_BACKEND=bird is supported at this time")

    default_wep_action = comps.get_env(checklist, CONTAINER_NODE, "FELIX_DEFAULTENDPOINTTOHOSTACTION")
    if default_wep_action is not None and default_wep_action.lower() != "accept":
        raise IncompatibleClusterError(
            f"unexpected FELIX_DEFAULTENDPOINTTOHOSTACTION: '{default_wep_action}'. Only 'accept' is supported."
        )

    ip_method = comps.get_env(checklist, CONTAINER_NODE, "IP")
    if ip_method is not None and ip_method.lower() != "autodetect":
        raise IncompatibleClusterError(f"unexpected IP value: '{ip_method}'. Only 'autodetect' is supported.")
    method = comps.get_env(checklist, CONTAINER_NODE, "IP_AUTODETECTION_METHOD")
    cfg["node_address_autodetection_v4"] = get_auto_detection(method)

    ip6_method = comps.get_env(checklist, CONTAINER_NODE, "IP6")
    method6 = comps.get_env(checklist, CONTAINER_NODE, "IP6_AUTODETECTION_METHOD")
    if ip6_method is None or ip6_method.lower() == "none":
        return
    if ip6_method.lower() != "autodetect":
        raise IncompatibleClusterError(
            f"unexpected IP6 value: '{ip6_method}'. Only 'autodetect' and 'none' are supported."
        )
    cfg["node_address_autodetection_v6"] = get_auto_detection(method6, "IP6_AUTODETECTION_METHOD")


def handle_cni(comps, checklist, cfg):
    if find_container(comps.resolver.pod_spec, CONTAINER_INSTALL_CNI) is None:
        log.info(f"No {CONTAINER_INSTALL_CNI} container, skipping CNI config")
        return

    cni_config = comps.get_env(checklist, CONTAINER_INSTALL_CNI, "CNI_NETWORK_CONFIG")
    if cni_config is None:
        checklist.mark_consumed(CONTAINER_INSTALL_CNI, "CNI_MTU")
        return

    plugins = parse_cni_config(cni_config)
    log.debug(f"CNI plugins: {plugins.names()}")
    conf = check_plugins(plugins)
    cfg["host_ports"] = plugins.host_ports()
    cfg["mtu"] = resolve_mtu(conf.mtu, comps.resolver, checklist)


def _encapsulation(ipip, vxlan):
    modes = {}
    for kind, value in (("IPIP", ipip), ("VXLAN", vxlan)):
        if value is None:
            continue
        mode = value.strip().lower()
        if mode in _ENCAP_OFF:
            continue
        if mode not in _ENCAP_MODES:
            raise IncompatibleClusterError(f"unexpected CALICO_IPV4POOL_{kind} value: '{value}'")
        modes[kind] = kind + _ENCAP_MODES[mode]

    if len(modes) > 1:
        raise IncompatibleClusterError("CALICO_IPV4POOL_IPIP and CALICO_IPV4POOL_VXLAN cannot both be enabled")
    if modes:
        return next(iter(modes.values()))
    if ipip is not None or vxlan is not None:
        return "None"
    return None


def handle_ip_pools(comps, checklist, cfg):
    pools = None
    for var, version in (("CALICO_IPV4POOL_CIDR", 4), ("CALICO_IPV6POOL_CIDR", 6)):
        cidr = comps.get_env(checklist, CONTAINER_NODE, var)
        if not cidr:
            continue
        pool = IPPool.from_cidr(cidr)
        if pool.version != version:
            raise IncompatibleClusterError(f"{var} must be an IPv{version} CIDR, got '{cidr}'")
        pools = (pools or []) + [pool]

    ipip = comps.get_env(checklist, CONTAINER_NODE, "CALICO_IPV4POOL_IPIP")
    vxlan = comps.get_env(checklist, CONTAINER_NODE, "CALICO_IPV4POOL_VXLAN")
    cfg["ipv4_encapsulation"] = _encapsulation(ipip, vxlan)

    if comps.platform is not None:
        platform_cidrs = comps.platform(comps.fetcher, comps.node, comps.namespace)
        pools = merge_platform_pod_cidrs(pools, platform_cidrs)

    cfg["ip_pools"] = tuple(pools) if pools is not None else None


def handle_felix_vars(comps, checklist, cfg):
    node = find_container(comps.resolver.pod_spec, CONTAINER_NODE)
    felix_vars = []
    for env in node.get("env") or []:
        name = env.get("name", "")
        if not name.startswith(FELIX_PREFIX) or checklist.is_consumed(CONTAINER_NODE, name):
            continue
        value = comps.get_env(checklist, CONTAINER_NODE, name)
        if value is None:
            # Optional ConfigMap key that is not set.
            continue
        felix_vars.append({"name": name, "value": value})
    cfg["felix_env_vars"] = tuple(felix_vars)


HANDLERS = [handle_core, handle_network, handle_cni, handle_ip_pools, handle_felix_vars]


def check_unclaimed(checklist):
    """
    Fail if a touched container has variables no handler claimed.

    Raises:
        IncompatibleClusterError: Naming every unclaimed variable
    """
    unchecked = []
    for container in checklist.touched():
        unchecked.extend(f"{container}/{name}" for name in sorted(checklist.unclaimed(container)))
    if unchecked:
        raise IncompatibleClusterError(f"unexpected env var: {', '.join(unchecked)}")


def extract_config(fetcher, platform=None, namespace="kube-system"):
    """
    Read the config of an existing Calico install.

    Args:
        fetcher: Object fetcher with a get(kind, namespace, name) method
        platform (str or callable, optional): Platform whose pod network CIDRs the
            IP pools are merged with; a key of PLATFORMS or a discovery function.
            None skips the merge.
        namespace (str): Namespace of the calico-node DaemonSet

    Returns:
        ExtractedConfig or None: The extracted config, or None if there is no
            existing install

    Raises:
        IncompatibleClusterError: If the install cannot be represented
        MalformedInputError: If part of the install cannot be parsed
        FetchError: If reading an object failed
    """
    try:
        node = fetcher.get("DaemonSet", namespace, NODE_DAEMONSET)
    except ObjectNotFoundError as e:
        log.info(f"No existing install found: {e}")
        return None

    pod_spec = node["spec"]["template"]["spec"]
    if find_container(pod_spec, CONTAINER_NODE) is None:
        raise IncompatibleClusterError(
            f"couldn't find {CONTAINER_NODE} container in existing calico-node daemonset"
        )

    if isinstance(platform, str):
        if platform not in PLATFORMS:
            raise ValueError(f"unknown platform {platform!r}, expected one of {sorted(PLATFORMS)}")
        platform = PLATFORMS[platform]

    comps = Components(node, EnvResolver(fetcher, pod_spec, namespace), fetcher, namespace, platform)
    checklist = Checklist.from_pod_spec(pod_spec)
    cfg = {}

    for handler in HANDLERS:
        handler(comps, checklist, cfg)

    # Go back through every container we looked at to make sure nothing was missed.
    check_unclaimed(checklist)

    log.info("Existing install converted")
    return ExtractedConfig(**cfg)
