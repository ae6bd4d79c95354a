"""
Exception hierarchy for the opportunity engine.

Errors carry a short machine-readable ``code`` so the HTTP adapter can
map them to status codes without string matching.
"""


class ArbitrageError(Exception):
    """Base exception for engine errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class InvalidInputError(ArbitrageError, ValueError):
    """Malformed input handed to a pure component."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_input")


class SettingsError(ArbitrageError, ValueError):
    """Runtime settings update rejected; nothing was applied."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_settings")


class LifecycleError(ArbitrageError):
    """Base exception for opportunity lifecycle violations."""

    pass


class OpportunityNotFoundError(LifecycleError):
    """No opportunity with the requested id."""

    def __init__(self, opportunity_id: str) -> None:
        super().__init__("Opportunity not found", code="not_found")
        self.opportunity_id = opportunity_id


class InvalidStateError(LifecycleError):
    """A transition was requested that the lifecycle graph does not allow."""

    def __init__(self, message: str, code: str = "invalid_state") -> None:
        super().__init__(message, code=code)


class NotPendingApprovalError(InvalidStateError):
    """Approve or reject called on an opportunity that is not awaiting approval."""

    def __init__(self, opportunity_id: str) -> None:
        super().__init__("Opportunity not pending approval", code="not_pending_approval")
        self.opportunity_id = opportunity_id


class PriceSourceError(ArbitrageError):
    """A price provider request failed."""

    pass


class ChainClientError(ArbitrageError):
    """A chain RPC call or transaction failed."""

    pass
