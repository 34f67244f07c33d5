"""Wire handler exposing the dependency manager to other processes."""

from .server import DepHandler, ParameterError, run_handler

__all__ = [
    "DepHandler",
    "ParameterError",
    "run_handler",
]
