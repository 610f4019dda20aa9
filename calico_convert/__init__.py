"""
Calico migration parser

Reads the configuration of an existing, manifest-based Calico install and
converts it into an equivalent installation config.
"""

from .errors import (
    FetchError,
    IncompatibleClusterError,
    MalformedInputError,
    MigrationError,
    ObjectNotFoundError,
)
from .models import ExtractedConfig, NodeAddressAutodetection
from .parser import extract_config

__version__ = "0.1.0"
