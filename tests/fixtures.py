"""
Cluster objects shared by the tests, modelled on the upstream calico.yaml manifest.
"""

import copy

CNI_CONFLIST = """{
  "name": "k8s-pod-network",
  "cniVersion": "0.3.1",
  "plugins": [
    {
      "type": "calico",
      "log_level": "info",
      "datastore_type": "kubernetes",
      "nodename": "__KUBERNETES_NODE_NAME__",
      "mtu": __CNI_MTU__,
      "ipam": {"type": "calico-ipam"},
      "policy": {"type": "k8s"},
      "kubernetes": {"kubeconfig": "__KUBECONFIG_FILEPATH__"}
    },
    {
      "type": "portmap",
      "snat": true,
      "capabilities": {"portMappings": true}
    }
  ]
}"""


def env(name, value):
    return {"name": name, "value": value}


def config_map_env(name, config_map, key, optional=None):
    ref = {"name": config_map, "key": key}
    if optional is not None:
        ref["optional"] = optional
    return {"name": name, "valueFrom": {"configMapKeyRef": ref}}


def field_env(name, field_path):
    return {"name": name, "valueFrom": {"fieldRef": {"fieldPath": field_path}}}


def default_node_env():
    return [
        env("DATASTORE_TYPE", "kubernetes"),
        env("WAIT_FOR_DATASTORE", "true"),
        field_env("NODENAME", "spec.nodeName"),
        config_map_env("CALICO_NETWORKING_BACKEND", "calico-config", "calico_backend"),
        env("CLUSTER_TYPE", "k8s,bgp"),
        env("IP", "autodetect"),
        env("CALICO_DISABLE_FILE_LOGGING", "true"),
        env("FELIX_DEFAULTENDPOINTTOHOSTACTION", "ACCEPT"),
        env("FELIX_IPV6SUPPORT", "false"),
        env("FELIX_HEALTHENABLED", "true"),
    ]


def default_cni_env():
    return [
        env("CNI_CONF_NAME", "10-calico.conflist"),
        config_map_env("CNI_NETWORK_CONFIG", "calico-config", "cni_network_config"),
        field_env("KUBERNETES_NODE_NAME", "spec.nodeName"),
        config_map_env("CNI_MTU", "calico-config", "veth_mtu"),
        env("SLEEP", "false"),
    ]


def calico_node_daemonset(node_env=None, cni_env=None, volumes=None, namespace="kube-system"):
    """Build a calico-node DaemonSet. Pass cni_env=False to leave out install-cni."""
    pod_spec = {
        "containers": [
            {
                "name": "calico-node",
                "image": "calico/node:v3.15.1",
                "env": default_node_env() if node_env is None else node_env,
            },
        ],
        "initContainers": [],
        "volumes": volumes or [],
    }
    if cni_env is not False:
        pod_spec["initContainers"].append({
            "name": "install-cni",
            "image": "calico/cni:v3.15.1",
            "command": ["/install-cni.sh"],
            "env": default_cni_env() if cni_env is None else cni_env,
        })
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": {"name": "calico-node", "namespace": namespace},
        "spec": {"template": {"spec": pod_spec}},
    }


def calico_config_map(cni_network_config=CNI_CONFLIST, veth_mtu="1440", backend="bird", namespace="kube-system"):
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "calico-config", "namespace": namespace},
        "data": {
            "typha_service_name": "none",
            "calico_backend": backend,
            "veth_mtu": veth_mtu,
            "cni_network_config": cni_network_config,
        },
    }


def default_install():
    return [calico_node_daemonset(), calico_config_map()]


def with_node_env(objects, *extra):
    """Copy of the objects with extra env entries appended to calico-node."""
    objects = copy.deepcopy(objects)
    objects[0]["spec"]["template"]["spec"]["containers"][0]["env"].extend(extra)
    return objects
