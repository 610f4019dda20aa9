"""
Kubernetes utility functions for the Calico migration parser

Object fetchers give the parser read access to cluster objects through one call,
get(kind, namespace, name), which returns the object as a manifest-shaped dict.
KubernetesObjectFetcher reads a live cluster; ManifestObjectFetcher reads
objects from YAML manifests, e.g. for converting a cluster dump offline.
"""

import logging

import urllib3
import yaml
from kubernetes import client, config

from .errors import FetchError, ObjectNotFoundError

log = logging.getLogger("calico-migration.k8s_utils")

CLUSTER_SCOPED_KINDS = {"Network"}


def get_kubernetes_client(kubeconfig=None, context=None):
    """
    Initialize and return a Kubernetes API client.

    Args:
        kubeconfig (str, optional): Path to a kubeconfig file
        context (str, optional): Kubeconfig context to use

    Returns:
        kubernetes.client.ApiClient: Initialized Kubernetes API client
    """
    try:
        # Try to load from kube config file
        config.load_kube_config(config_file=kubeconfig, context=context)
        log.info("Loaded Kubernetes configuration from kube config file")
    except Exception as e:
        # If that fails, try to load in-cluster config
        try:
            config.load_incluster_config()
            log.info("Loaded in-cluster Kubernetes configuration")
        except Exception as in_cluster_e:
            log.error("Failed to load Kubernetes configuration: %s", str(e))
            log.error("In-cluster config also failed: %s", str(in_cluster_e))
            raise RuntimeError("Could not configure Kubernetes client") from e

    return client.ApiClient()


class KubernetesObjectFetcher:
    """
    Reads objects from a live cluster.

    Args:
        api_client (kubernetes.client.ApiClient): Client from get_kubernetes_client()
    """

    def __init__(self, api_client):
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)

    def get(self, kind, namespace, name):
        """
        Read one object.

        Args:
            kind (str): DaemonSet, ConfigMap or Network (config.openshift.io)
            namespace (str): Namespace, ignored for cluster scoped kinds
            name (str): Object name

        Returns:
            dict: The object in manifest form

        Raises:
            ObjectNotFoundError: If the object does not exist
            FetchError: If the API request failed
        """
        log.debug(f"Reading {kind} {namespace}/{name}")
        try:
            if kind == "DaemonSet":
                obj = self.apps_v1.read_namespaced_daemon_set(name=name, namespace=namespace)
            elif kind == "ConfigMap":
                obj = self.core_v1.read_namespaced_config_map(name=name, namespace=namespace)
            elif kind == "Network":
                # Custom objects already come back as dicts.
                return self.custom.get_cluster_custom_object(
                    group="config.openshift.io",
                    version="v1",
                    plural="networks",
                    name=name,
                )
            else:
                raise ValueError(f"unsupported kind {kind}")
        except client.rest.ApiException as e:
            if e.status == 404:
                raise ObjectNotFoundError(kind, namespace, name) from e
            raise FetchError(f"Error reading {kind} {namespace}/{name}: {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise FetchError(f"Error reading {kind} {namespace}/{name}: {str(e)}") from e

        return self.api_client.sanitize_for_serialization(obj)


class ManifestObjectFetcher:
    """
    Serves objects loaded from manifests.

    Namespaced objects without a namespace are placed in 'default', like kubectl does.
    'List' objects, as written by 'kubectl get -o yaml', are expanded into their items.

    Args:
        objects (list): Objects as dicts
    """

    def __init__(self, objects):
        self.objects = {}
        for obj in objects:
            self.add(obj)

    def add(self, obj):
        if not obj:
            return
        kind = obj.get("kind")
        if kind == "List":
            for item in obj.get("items") or []:
                self.add(item)
            return
        metadata = obj.get("metadata") or {}
        namespace = None if kind in CLUSTER_SCOPED_KINDS else metadata.get("namespace") or "default"
        self.objects[(kind, namespace, metadata.get("name"))] = obj

    @classmethod
    def from_yaml(cls, text):
        # Manifests often contain empty documents or start with '---'.
        return cls([doc for doc in yaml.safe_load_all(text) if isinstance(doc, dict)])

    @classmethod
    def from_file(cls, path):
        log.info(f"Loading objects from {path}")
        with open(path, "r") as f:
            return cls.from_yaml(f.read())

    def get(self, kind, namespace, name):
        if kind in CLUSTER_SCOPED_KINDS:
            namespace = None
        try:
            return self.objects[(kind, namespace, name)]
        except KeyError:
            raise ObjectNotFoundError(kind, namespace, name) from None
