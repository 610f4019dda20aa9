"""
Environment variable resolution for the Calico migration parser

This module looks up environment variables on the containers of the existing
calico-node DaemonSet. Values are either literal or read from a ConfigMap key;
any other kind of reference is unsupported.

Every lookup goes through a Checklist so that, once all handlers have run, any
variable nobody asked for can be reported instead of being silently dropped.
"""

import logging
from enum import Enum

from .errors import IncompatibleClusterError

log = logging.getLogger("calico-migration.env")


class ValueSource(Enum):
    """Where the value of an environment variable comes from."""

    LITERAL = "value"
    CONFIG_MAP_KEY = "configMapKeyRef"
    SECRET_KEY = "secretKeyRef"
    FIELD = "fieldRef"
    RESOURCE_FIELD = "resourceFieldRef"


def value_source(env):
    """
    Classify an env entry by where its value comes from.

    Args:
        env (dict): Container env entry in manifest form

    Returns:
        ValueSource: The source kind
    """
    value_from = env.get("valueFrom") or {}
    if env.get("value") or not value_from:
        return ValueSource.LITERAL
    for source in (ValueSource.CONFIG_MAP_KEY, ValueSource.SECRET_KEY,
                   ValueSource.FIELD, ValueSource.RESOURCE_FIELD):
        if value_from.get(source.value) is not None:
            return source
    raise IncompatibleClusterError(
        f"unrecognized valueFrom on env var {env.get('name')}: {sorted(value_from)}"
    )


def iter_containers(pod_spec):
    """Yield the regular containers of a pod spec, then the init containers."""
    for container in pod_spec.get("containers") or []:
        yield container
    for container in pod_spec.get("initContainers") or []:
        yield container


def find_container(pod_spec, name):
    for container in iter_containers(pod_spec):
        if container.get("name") == name:
            return container
    return None


class Checklist:
    """
    Record of which environment variables have been claimed by a handler.

    One Checklist is created per conversion and passed to every handler.
    """

    def __init__(self, present):
        self._present = {container: set(names) for container, names in present.items()}
        self._claimed = {}

    @classmethod
    def from_pod_spec(cls, pod_spec):
        present = {}
        for container in iter_containers(pod_spec):
            names = present.setdefault(container.get("name"), set())
            names.update(env.get("name") for env in container.get("env") or [])
        return cls(present)

    def mark_consumed(self, container, name):
        self._claimed.setdefault(container, set()).add(name)

    def is_consumed(self, container, name):
        return name in self._claimed.get(container, ())

    def unclaimed(self, container):
        """
        Get the variables set on a container that no handler claimed.

        Args:
            container (str): Container name

        Returns:
            set: Names present on the container but never claimed
        """
        return self._present.get(container, set()) - self._claimed.get(container, set())

    def touched(self):
        """Names of the containers at least one variable was claimed on, sorted."""
        return sorted(self._claimed)


class EnvResolver:
    """
    Resolves environment variables of the containers in one pod spec.

    Args:
        fetcher: Object fetcher with a get(kind, namespace, name) method
        pod_spec (dict): Pod spec of the calico-node DaemonSet template
        namespace (str): Namespace ConfigMap references are read from
    """

    def __init__(self, fetcher, pod_spec, namespace="kube-system"):
        self.fetcher = fetcher
        self.pod_spec = pod_spec
        self.namespace = namespace

    def get(self, checklist, container, name):
        """
        Claim a variable on the checklist and resolve it.

        Returns:
            str or None: The value, or None if the variable is not set
        """
        checklist.mark_consumed(container, name)
        value, found = self.resolve(container, name)
        return value if found else None

    def resolve(self, container, name):
        """
        Resolve a variable on a container.

        Args:
            container (str): Container name, regular or init container
            name (str): Variable name

        Returns:
            tuple: (value, found). found is False if the variable is not set.

        Raises:
            IncompatibleClusterError: If the container is missing, the value comes
                from an unsupported reference, or the referenced ConfigMap key is missing
            FetchError: If the referenced ConfigMap could not be read
        """
        c = find_container(self.pod_spec, container)
        if c is None:
            raise IncompatibleClusterError(
                f"couldn't find {container} container in existing calico-node daemonset"
            )

        for env in c.get("env") or []:
            if env.get("name") == name:
                return self._resolve_entry(container, env)
        return None, False

    def _resolve_entry(self, container, env):
        source = value_source(env)
        name = env.get("name")

        if source is ValueSource.LITERAL:
            value = env.get("value") or ""
            log.debug(f"{container}/{name}={value!r}")
            return value, True

        if source is ValueSource.CONFIG_MAP_KEY:
            ref = env["valueFrom"]["configMapKeyRef"]
            cm = self.fetcher.get("ConfigMap", self.namespace, ref.get("name"))
            data = cm.get("data") or {}
            key = ref.get("key")
            if key not in data:
                if ref.get("optional"):
                    log.debug(f"{container}/{name} references missing optional key {key}")
                    return None, False
                raise IncompatibleClusterError(
                    f"env var {container}/{name} references key '{key}' missing from ConfigMap "
                    f"{self.namespace}/{ref.get('name')}"
                )
            # A key set to null in a manifest reads as empty, like an empty literal.
            value = data[key] if data[key] is not None else ""
            log.debug(f"{container}/{name}={value!r} (from ConfigMap {ref.get('name')})")
            return value, True

        raise IncompatibleClusterError(
            f"env var {container}/{name} uses {source.value}; only configMapKeyRef "
            "and explicit values are supported for env vars"
        )
