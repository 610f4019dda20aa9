"""
Error types for the Calico migration parser

Every failure raised while reading an existing install derives from MigrationError
so the CLI can report it in one place. The subclasses tell the caller what to do next:
retry (FetchError), or stop and show the reason to the operator (everything else).
"""


class MigrationError(Exception):
    """Base class for all conversion failures."""


class IncompatibleClusterError(MigrationError):
    """
    Raised when the existing install uses a setting that cannot be represented.

    This covers both recognized-but-unsupported values and settings the parser
    does not know about at all. It is always terminal for the run.
    """

    def __init__(self, reason):
        self.reason = reason
        super().__init__(reason)


class MalformedInputError(MigrationError):
    """Raised when a document, CIDR or number in the cluster state cannot be parsed."""


class FetchError(MigrationError):
    """Raised when reading a Kubernetes object failed. Safe to retry."""


class ObjectNotFoundError(FetchError):
    """Raised when a requested Kubernetes object does not exist."""

    def __init__(self, kind, namespace, name):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {location} not found")
