"""
Load simulator error types.

Every error carries an OCPP-style ``code`` so that faults raised while handling an
inbound Call can be turned straight into a CallError reply.
"""

from typing import Any, Optional


class LoadSimError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class DecodeFailure(LoadSimError):
    """Inbound frame is not a well-formed OCPP-J envelope."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__("FormationViolation", message, {"raw": raw} if raw is not None else None)
        self.raw = raw


class ActionNotImplemented(LoadSimError):
    def __init__(self, action: str):
        super().__init__("NotImplemented", f"Action {action} not implemented")
        self.action = action


class RegistryFrozen(LoadSimError):
    def __init__(self, action: str):
        super().__init__("registry_frozen", f"Cannot register {action}: registry is frozen")


class OpenFailure(LoadSimError):
    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__("open_failed", message, {"url": url} if url else None)


class TransportFault(LoadSimError):
    def __init__(self, message: str):
        super().__init__("transport_fault", message)


class ConfigError(LoadSimError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("config_error", message, details)
