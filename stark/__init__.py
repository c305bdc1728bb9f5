"""Service registration, discovery and client-side node selection for HTTP and gRPC services."""

__version__ = "0.1.0"