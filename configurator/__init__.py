"""
Configurator

Applies an ordered, idempotent task list (package, account, artifact,
extraction, ownership, unit file, service) to the provisioned host over SSH.
"""

__version__ = "0.1.0"
