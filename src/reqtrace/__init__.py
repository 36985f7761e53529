"""
reqtrace

Purpose
- Package root for the requirement-trace annotation ingestion core.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
