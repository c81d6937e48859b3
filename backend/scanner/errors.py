"""Exception hierarchy for the scanning subsystem."""


class ScanError(Exception):
    """Base class for all scanner errors."""


class TransientDispatchError(ScanError):
    """A single mutated request could not be sent (network / protocol failure)."""


class MalformedBodyError(ScanError):
    """The base request's JSON body could not be parsed as an object."""


class RequestNotFoundError(ScanError):
    """A base request id could not be resolved through the request lookup."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"request {request_id} not found")
        self.request_id = request_id


class UnhandledSweepError(ScanError):
    """Unexpected failure while running the mutation / analysis sweep."""

    def __init__(self, scan_id: str, cause: BaseException) -> None:
        super().__init__(f"scan {scan_id} failed: {cause}")
        self.scan_id = scan_id
