"""Exception taxonomy for the allocation pipeline."""


class AllocationError(Exception):
    """Base class for all allocation pipeline errors."""
    pass


class ConfigError(AllocationError):
    """Ledger (or another required collaborator) is not configured/connected."""
    pass


class RunConflictError(AllocationError):
    """Another categorization run is already in progress."""
    pass


class DataError(AllocationError):
    """Required cached ledger data is missing or yields nothing to process."""
    pass


class ParseError(AllocationError):
    """LLM output could not be parsed into the expected recommendation shape."""
    pass


class ValidationError(AllocationError):
    """LLM picked a grant that is unknown or does not cover the transaction's account."""
    pass


class SubmissionError(AllocationError):
    """Writing a single allocation back to the ledger failed."""
    pass
