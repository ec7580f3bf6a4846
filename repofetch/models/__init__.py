"""Data models for repofetch."""

from repofetch.models.refs import COMMIT_INFO_FORMAT, CheckoutInfo, CommitInfo
from repofetch.models.result import AcquisitionMethod, AcquisitionResult
from repofetch.models.settings import AcquisitionSettings, SubmoduleMode

__all__ = [
    # Settings
    "AcquisitionSettings",
    "SubmoduleMode",
    # Refs
    "CheckoutInfo",
    "CommitInfo",
    "COMMIT_INFO_FORMAT",
    # Results
    "AcquisitionMethod",
    "AcquisitionResult",
]
