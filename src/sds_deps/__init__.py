"""sds-deps: local dependency lifecycle manager for service meshes.

Fetches, builds, runs and supervises the dependencies a service declares,
and exposes those operations over a request/reply socket.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
