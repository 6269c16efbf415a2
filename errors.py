"""Exception types for the ssam-replicate dev server plugin"""


class SsamReplicateError(Exception):
    """Base class for all plugin errors"""


class ConfigurationError(SsamReplicateError):
    """Invalid plugin options"""


class ReplicateError(SsamReplicateError):
    """A call to the Replicate API failed"""


class ReplicateModelError(ReplicateError):
    """The remote prediction finished as failed or canceled"""

    def __init__(self, message: str, prediction: dict | None = None):
        super().__init__(message)
        self.prediction = prediction or {}


class MalformedUrlError(SsamReplicateError):
    """An output URL could not be parsed"""


class DownloadStreamError(SsamReplicateError):
    """Streaming a remote file to disk failed"""
