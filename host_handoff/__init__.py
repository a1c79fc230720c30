"""
Host Registry Hand-off

Carries the address of the freshly provisioned host from the provisioning
stage to the configuration stage as a versioned artifact keyed by
deployment id.
"""

from .artifact import DEFAULT_HANDOFF_DIR, HandoffArtifact, HandoffStore, check_fresh
from .errors import HandoffError, HandoffMissingError, HostRecordFormatError, StaleHandoffError
from .host_record import HostRecord, format_host_records, parse_host_record

__all__ = [
    "DEFAULT_HANDOFF_DIR",
    "HandoffArtifact",
    "HandoffStore",
    "check_fresh",
    "HandoffError",
    "HandoffMissingError",
    "HostRecordFormatError",
    "StaleHandoffError",
    "HostRecord",
    "format_host_records",
    "parse_host_record",
]
