"""
Error types raised by the scanning pipeline and the batch orchestrator
"""


class ScanError(Exception):
    """Base class for all scanning errors"""


class DecodeFailed(ScanError):
    """Input bytes could not be read or decoded into an image"""


class DetectionFailed(ScanError):
    """No usable document boundary could be produced"""


class InvalidCornerCount(ScanError):
    """A quadrilateral was supplied without exactly four points"""

    def __init__(self, count: int):
        super().__init__(f"Expected 4 corner points, got {count}")
        self.count = count


class RectificationFailed(ScanError):
    """The perspective transform could not be computed"""


class FilterUnavailable(ScanError):
    """An enhancement filter backend is missing (recovered inside the enhancer)"""

    def __init__(self, filter_name: str):
        super().__init__(f"Image filter unavailable: {filter_name}")
        self.filter_name = filter_name


class EncodeFailed(ScanError):
    """The final raster could not be serialized"""


class ProcessingCancelled(ScanError):
    """Processing was cancelled between two stages"""


class InvalidStateTransition(ScanError):
    """An orchestrator operation is not valid for the entry's current status"""


class EntryNotFound(ScanError, KeyError):
    """No queue entry exists with the given id"""

    def __init__(self, entry_id: str):
        super().__init__(f"No document with id {entry_id}")
        self.entry_id = entry_id

    def __str__(self):
        return self.args[0]
