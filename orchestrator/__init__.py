"""
Orchestrator

Runs the provision stage, then the configure stage, each in its own
disposable environment, and passes the host hand-off between them through
a run-scoped directory.

Usage:
    python -m orchestrator -p pipeline.toml run
    python -m orchestrator -p pipeline.toml status
"""

__version__ = "0.1.0"
