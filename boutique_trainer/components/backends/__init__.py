from .http_backend import HTTPBackend
from .mock_backend import MockBackend

__all__ = ["HTTPBackend", "MockBackend"]
