from __future__ import annotations


class EngineError(RuntimeError):
    """Base class for failures that abort an engine operation.

    `retryable` tells callers whether re-invoking the operation against the
    rolled-back state can succeed.
    """

    retryable: bool = True


class StateValidationError(EngineError):
    pass


class BackendError(EngineError):
    pass


class BackendAbortError(BackendError):
    """The in-flight backend call was cancelled via `abort()`."""


class BudgetExceededError(EngineError):
    def __init__(self, *, tokens: int, budget: int):
        super().__init__(f"Context needs ~{tokens} tokens, budget is {budget}")
        self.tokens = tokens
        self.budget = budget


class InvalidViewError(EngineError):
    retryable = False


class TransitionNotAllowedError(EngineError):
    retryable = False


class ProviderCapabilityError(EngineError):
    """A rule provider capability raised or returned garbage.

    Only created inside the rule dispatcher, which logs it and substitutes the
    neutral default.
    """

    def __init__(self, *, provider: str, capability: str, cause: BaseException):
        super().__init__(f"Rule provider '{provider}' failed in {capability}: {cause!r}")
        self.provider = provider
        self.capability = capability
        self.cause = cause
