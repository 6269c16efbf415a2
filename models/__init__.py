"""Data models for the ssam-replicate dev server plugin"""

from models.options import ReplicateOptions
from models.request import PredictRequest, RunRequest

__all__ = ["ReplicateOptions", "PredictRequest", "RunRequest"]
