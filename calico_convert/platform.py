"""
Platform pod network discovery for the Calico migration parser

Each discovery function reads the pod network CIDRs that the underlying
platform was set up with, so the IP pools of the converted install can be
checked against (or built from) them. They all share one signature:

    discover(fetcher, node, namespace) -> list of CIDR strings

where node is the calico-node DaemonSet as a dict.
"""

import json
import logging
import re

from .cidr import parse_cidr
from .errors import FetchError, IncompatibleClusterError, MalformedInputError, ObjectNotFoundError

log = logging.getLogger("calico-migration.platform")

KUBEADM_CONFIG_MAP = "kubeadm-config"
OPENSHIFT_NETWORK_CONFIG = "cluster"
FLANNEL_VOLUME = "flannel-cfg"
FLANNEL_CONFIG_KEY = "net-conf.json"

_POD_SUBNET_RE = re.compile(r"podSubnet: (.*)")


def _validated(cidrs):
    for cidr in cidrs:
        parse_cidr(cidr)
    return cidrs


def kubeadm_pod_cidrs(fetcher, node, namespace="kube-system"):
    """
    Read the pod subnet(s) from the kubeadm-config ConfigMap.

    The first 'podSubnet:' line found in the ConfigMap is used. Dual stack
    clusters list the IPv4 and IPv6 subnets separated by a comma.

    Returns:
        list: CIDR strings, empty if the cluster was not set up by kubeadm

    Raises:
        FetchError: If the ConfigMap could not be read
        MalformedInputError: If a listed subnet is not a CIDR
    """
    try:
        cm = fetcher.get("ConfigMap", namespace, KUBEADM_CONFIG_MAP)
    except ObjectNotFoundError:
        log.info(f"No {KUBEADM_CONFIG_MAP} ConfigMap found, no platform pod CIDRs")
        return []

    data = cm.get("data") or {}
    match = None
    for key in sorted(data):
        match = _POD_SUBNET_RE.search(data[key])
        if match:
            break
    if not match:
        return []

    cidrs = [cidr.strip() for cidr in match.group(1).split(",")]
    log.info(f"Found kubeadm pod subnet(s): {', '.join(cidrs)}")
    return _validated(cidrs)


def openshift_pod_cidrs(fetcher, node, namespace="kube-system"):
    """
    Read the cluster network CIDRs from the OpenShift Network config.

    Raises:
        FetchError: If the Network config could not be read
        MalformedInputError: If a listed CIDR is not valid
    """
    try:
        network = fetcher.get("Network", None, OPENSHIFT_NETWORK_CONFIG)
    except FetchError as e:
        raise FetchError(f"Unable to read openshift network configuration: {e}") from e

    cidrs = [entry.get("cidr") for entry in (network.get("spec") or {}).get("clusterNetwork") or []]
    log.info(f"Found OpenShift cluster network(s): {cidrs}")
    return _validated(cidrs)


def canal_pod_cidrs(fetcher, node, namespace="kube-system"):
    """
    Read the pod network from the flannel config of a Canal install.

    Returns:
        list: The flannel network CIDR, empty if the install is not Canal

    Raises:
        IncompatibleClusterError: If flannel is not configured from a ConfigMap or
            uses a backend other than vxlan
        MalformedInputError: If net-conf.json is not valid
    """
    volumes = node["spec"]["template"]["spec"].get("volumes") or []
    volume = next((v for v in volumes if v.get("name") == FLANNEL_VOLUME), None)
    if volume is None:
        return []
    if not volume.get("configMap"):
        raise IncompatibleClusterError("canal must load config via configmap")

    cm_name = volume["configMap"].get("name")
    cm = fetcher.get("ConfigMap", namespace, cm_name)
    raw = (cm.get("data") or {}).get(FLANNEL_CONFIG_KEY, "")
    try:
        flannel = json.loads(raw)
    except ValueError as e:
        raise MalformedInputError(f"failed to parse '{raw}': {e}") from e
    if not isinstance(flannel, dict):
        raise MalformedInputError(f"failed to parse '{raw}': not a JSON object")

    backend = flannel.get("Backend") or {}
    if backend.get("Type", "vxlan") != "vxlan":
        raise IncompatibleClusterError("only backend vxlan supported")

    network = flannel.get("Network")
    if not network:
        return []
    return _validated([network])


PLATFORMS = {
    "kubeadm": kubeadm_pod_cidrs,
    "openshift": openshift_pod_cidrs,
    "canal": canal_pod_cidrs,
}
