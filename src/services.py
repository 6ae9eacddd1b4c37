"""Lookup of the OrderFlow services for the process runners."""

import importlib

SERVICE_NAMES = ["ordering", "payments", "inventory", "shipping"]

_initialized = {}


def load_service(name):
    """Import and initialize a service, returning ``(domain, runtime)``."""
    if name not in SERVICE_NAMES:
        raise ValueError(f"Unknown service: {name}")

    if name not in _initialized:
        domain = getattr(importlib.import_module(f"{name}.domain"), name)
        domain.init()
        runtime = importlib.import_module(f"{name}.bus").runtime
        _initialized[name] = (domain, runtime)
    return _initialized[name]
