"""Exception hierarchy shared by the upload flow and the scoring function."""


class BiteClubError(RuntimeError):
    """Base class for errors raised inside the service layer."""


class ValidationError(BiteClubError, ValueError):
    """Bad caller input (HTTP 400/405)."""


class TransientInfrastructureError(BiteClubError):
    """Storage, network or timeout failure that may succeed on retry."""


class StorageError(TransientInfrastructureError):
    """The object store rejected or failed a single operation."""


class StorageUploadFailed(TransientInfrastructureError):
    """Every attempt to store an image failed."""


class ImageFetchError(TransientInfrastructureError):
    """Downloading an image for analysis failed."""


class EdgeFunctionTimeout(TransientInfrastructureError):
    """The scoring function did not answer in time."""


class MetadataInsertFailed(BiteClubError):
    """The post row could not be created."""


class ScoringError(BiteClubError):
    """Scoring could not produce a result."""


class ModelOverloadError(ScoringError):
    """The model provider is overloaded, out of quota or unavailable."""


class ModelResponseError(ScoringError):
    """The model answered with missing, malformed or out-of-range JSON."""


class ScoringFunctionError(ScoringError):
    """The scoring endpoint returned an error status or payload."""


class NoResponseFromScoringSystem(ScoringError):
    """The scoring endpoint returned an empty body."""


class PersistenceError(BiteClubError):
    """A computed score could not be saved."""
