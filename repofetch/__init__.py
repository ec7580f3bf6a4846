"""repofetch - Fetch a hosted repository at a ref into a local working copy."""

from repofetch.acquire import cleanup, get_source
from repofetch.errors import AcquisitionError
from repofetch.models import AcquisitionResult, AcquisitionSettings, SubmoduleMode

__version__ = "0.1.0"
__all__ = [
    "AcquisitionError",
    "AcquisitionResult",
    "AcquisitionSettings",
    "SubmoduleMode",
    "cleanup",
    "get_source",
]
