#!/usr/bin/env python3
"""
Tests for environment variable resolution and the checklist.
"""

import os
import sys
import unittest
from unittest.mock import MagicMock

# Add parent directory to path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from calico_convert.env import Checklist, EnvResolver, ValueSource, value_source
from calico_convert.errors import FetchError, IncompatibleClusterError, ObjectNotFoundError
from calico_convert.k8s_utils import ManifestObjectFetcher

from fixtures import calico_config_map, calico_node_daemonset, config_map_env, env, field_env


class TestEnvResolver(unittest.TestCase):
    """Test cases for EnvResolver."""

    def setUp(self):
        """Set up a pod spec and the ConfigMap it references."""
        self.ds = calico_node_daemonset(node_env=[
            env("DATASTORE_TYPE", "kubernetes"),
            env("EMPTY", ""),
            config_map_env("CALICO_NETWORKING_BACKEND", "calico-config", "calico_backend"),
            config_map_env("MISSING_KEY", "calico-config", "no_such_key"),
            config_map_env("OPTIONAL_KEY", "calico-config", "no_such_key", optional=True),
            config_map_env("MISSING_CM", "other-config", "key"),
            field_env("NODENAME", "spec.nodeName"),
            {"name": "SECRET", "valueFrom": {"secretKeyRef": {"name": "s", "key": "k"}}},
            {"name": "LIMIT", "valueFrom": {"resourceFieldRef": {"resource": "limits.cpu"}}},
        ])
        self.pod_spec = self.ds["spec"]["template"]["spec"]
        self.fetcher = ManifestObjectFetcher([calico_config_map()])
        self.resolver = EnvResolver(self.fetcher, self.pod_spec)

    def test_literal(self):
        self.assertEqual(self.resolver.resolve("calico-node", "DATASTORE_TYPE"), ("kubernetes", True))
        self.assertEqual(self.resolver.resolve("calico-node", "EMPTY"), ("", True))

    def test_absent(self):
        """Test that an absent variable is reported as not found, not as an error."""
        self.assertEqual(self.resolver.resolve("calico-node", "NOT_SET"), (None, False))

    def test_config_map_key(self):
        self.assertEqual(self.resolver.resolve("calico-node", "CALICO_NETWORKING_BACKEND"), ("bird", True))

    def test_config_map_from_init_container(self):
        value, found = self.resolver.resolve("install-cni", "CNI_MTU")
        self.assertTrue(found)
        self.assertEqual(value, "1440")

    def test_missing_config_map(self):
        """Test that a missing ConfigMap surfaces as a fetch error."""
        with self.assertRaises(ObjectNotFoundError):
            self.resolver.resolve("calico-node", "MISSING_CM")

    def test_fetch_error_propagates(self):
        fetcher = MagicMock()
        fetcher.get.side_effect = FetchError("connection refused")
        resolver = EnvResolver(fetcher, self.pod_spec)
        with self.assertRaises(FetchError):
            resolver.resolve("calico-node", "CALICO_NETWORKING_BACKEND")
        fetcher.get.assert_called_once_with("ConfigMap", "kube-system", "calico-config")

    def test_config_map_namespace(self):
        fetcher = MagicMock()
        fetcher.get.return_value = {"data": {"calico_backend": "bird"}}
        resolver = EnvResolver(fetcher, self.pod_spec, namespace="calico-system")
        self.assertEqual(resolver.resolve("calico-node", "CALICO_NETWORKING_BACKEND"), ("bird", True))
        fetcher.get.assert_called_once_with("ConfigMap", "calico-system", "calico-config")

    def test_missing_key(self):
        with self.assertRaises(IncompatibleClusterError):
            self.resolver.resolve("calico-node", "MISSING_KEY")

    def test_missing_optional_key(self):
        self.assertEqual(self.resolver.resolve("calico-node", "OPTIONAL_KEY"), (None, False))

    def test_null_config_map_value(self):
        """Test that a key set to null reads as an empty value."""
        resolver = EnvResolver(ManifestObjectFetcher([calico_config_map(backend=None)]), self.pod_spec)
        self.assertEqual(resolver.resolve("calico-node", "CALICO_NETWORKING_BACKEND"), ("", True))

    def test_unsupported_references(self):
        """Test that secret, field and resource references are incompatible."""
        for name in ("NODENAME", "SECRET", "LIMIT"):
            with self.subTest(name=name):
                with self.assertRaises(IncompatibleClusterError):
                    self.resolver.resolve("calico-node", name)

    def test_missing_container(self):
        with self.assertRaises(IncompatibleClusterError) as ctx:
            self.resolver.resolve("calico-typha", "DATASTORE_TYPE")
        self.assertIn("calico-typha", ctx.exception.reason)

    def test_get_marks_consumed(self):
        checklist = Checklist.from_pod_spec(self.pod_spec)
        self.assertEqual(self.resolver.get(checklist, "calico-node", "DATASTORE_TYPE"), "kubernetes")
        self.assertIsNone(self.resolver.get(checklist, "calico-node", "NOT_SET"))
        self.assertTrue(checklist.is_consumed("calico-node", "DATASTORE_TYPE"))
        self.assertTrue(checklist.is_consumed("calico-node", "NOT_SET"))


class TestValueSource(unittest.TestCase):
    """Test cases for value_source."""

    def test_value_source(self):
        self.assertIs(value_source(env("A", "b")), ValueSource.LITERAL)
        self.assertIs(value_source({"name": "A"}), ValueSource.LITERAL)
        self.assertIs(value_source(config_map_env("A", "cm", "k")), ValueSource.CONFIG_MAP_KEY)
        self.assertIs(value_source(field_env("A", "spec.nodeName")), ValueSource.FIELD)

    def test_unknown_reference(self):
        with self.assertRaises(IncompatibleClusterError):
            value_source({"name": "A", "valueFrom": {"somethingNew": {}}})


class TestChecklist(unittest.TestCase):
    """Test cases for Checklist."""

    def test_unclaimed(self):
        """Test that unclaimed returns the variables nobody asked for."""
        checklist = Checklist({"calico-node": {"A", "B", "C"}})
        checklist.mark_consumed("calico-node", "A")
        checklist.mark_consumed("calico-node", "Z")
        self.assertEqual(checklist.unclaimed("calico-node"), {"B", "C"})

    def test_touched(self):
        checklist = Checklist({"calico-node": {"A"}, "install-cni": {"B"}, "flexvol-driver": set()})
        checklist.mark_consumed("install-cni", "B")
        checklist.mark_consumed("calico-node", "A")
        self.assertEqual(checklist.touched(), ["calico-node", "install-cni"])
        self.assertEqual(checklist.unclaimed("flexvol-driver"), set())

    def test_from_pod_spec(self):
        pod_spec = calico_node_daemonset()["spec"]["template"]["spec"]
        checklist = Checklist.from_pod_spec(pod_spec)
        self.assertIn("CNI_MTU", checklist.unclaimed("install-cni"))
        self.assertIn("IP", checklist.unclaimed("calico-node"))


if __name__ == '__main__':
    unittest.main()
