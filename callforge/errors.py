"""
Error Taxonomy

All exceptions raised by the contract-interaction engine derive from
CallForgeError. The hierarchy mirrors the pipeline stages: resolution,
value transformation and execution. Execution errors always carry the
last status observed before the failure plus the underlying cause.
"""

from typing import Any

from .models.execution import TxStatus


class CallForgeError(Exception):
    """Base exception for all engine errors."""

    pass


# ==================== Resolution ====================


class ResolutionError(CallForgeError):
    """Raised when a contract definition cannot be turned into a schema."""

    pass


class DefinitionUnavailable(ResolutionError):
    """
    Raised when no definition provider could supply the contract interface.

    Attributes:
        address: Contract address that was being resolved
        causes: (provider, message) pairs, one per failed attempt
    """

    def __init__(
        self,
        message: str,
        address: str | None = None,
        causes: list[tuple[str, str]] | None = None,
    ) -> None:
        self.address = address
        self.causes = list(causes or [])
        if self.causes:
            detail = "; ".join(f"{provider}: {cause}" for provider, cause in self.causes)
            message = f"{message} ({detail})"
        super().__init__(message)


class DefinitionProviderError(ResolutionError):
    """A single definition provider failed; the resolver tries the next one."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class ProxyResolutionAmbiguous(ResolutionError):
    """Raised when a proxy was detected but could not be resolved with confidence."""

    def __init__(self, message: str, proxy_info: Any = None) -> None:
        super().__init__(message)
        self.proxy_info = proxy_info


class UnsupportedParameterType(CallForgeError):
    """
    A parameter type the mapping tables do not know.

    Mapping never raises this; it logs a warning and falls back to a text
    field. Strict callers may raise it themselves.
    """

    def __init__(self, parameter_type: str) -> None:
        super().__init__(f"Unsupported parameter type: {parameter_type}")
        self.parameter_type = parameter_type


# ==================== Value Transform ====================


class ValueTransformInvalid(CallForgeError):
    """
    A single field failed to parse or format.

    Attributes:
        path: Dotted path to the failing field, e.g. "range.min" or "ids[2]"
        reason: Human readable explanation without the path prefix
        parameter_type: The declared type of the failing field
    """

    def __init__(self, path: str, reason: str, parameter_type: str | None = None) -> None:
        self.path = path
        self.reason = reason
        self.parameter_type = parameter_type
        type_part = f" (type '{parameter_type}')" if parameter_type else ""
        super().__init__(f"Invalid value for '{path}'{type_part}: {reason}")


class ValueTransformErrors(CallForgeError):
    """All field errors collected while formatting a submission."""

    def __init__(self, errors: list[ValueTransformInvalid]) -> None:
        self.errors = list(errors)
        fields = ", ".join(e.path for e in self.errors)
        super().__init__(f"{len(self.errors)} invalid field(s): {fields}")

    @property
    def by_path(self) -> dict[str, str]:
        return {e.path: e.reason for e in self.errors}


# ==================== Execution ====================


class ExecutionError(CallForgeError):
    """
    Terminal execution failure.

    Attributes:
        last_status: Status the submission was in when it failed
        cause: Underlying exception, if any
        tx_id: Transaction hash or relayer transaction id, when one exists
    """

    def __init__(
        self,
        message: str,
        last_status: TxStatus | None = None,
        cause: BaseException | None = None,
        tx_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.last_status = last_status
        self.cause = cause
        self.tx_id = tx_id


class SignatureRejected(ExecutionError):
    """The wallet owner declined to sign."""

    pass


class InsufficientFunds(ExecutionError):
    """The signing account cannot cover value plus gas."""

    pass


class ExecutionReverted(ExecutionError):
    """The transaction was mined but reverted."""

    pass


class RelayerUnavailable(ExecutionError):
    """The relay service could not be reached."""

    pass


class RelayerRejected(ExecutionError):
    """The relay service refused or failed the transaction."""

    pass


class ConfirmationTimeout(ExecutionError):
    """
    Confirmation polling gave up before a terminal answer.

    The transaction may still settle later; tx_id can be used to re-attach.
    """

    may_settle_later = True


class ExecutionConfigInvalid(ExecutionError):
    """The execution configuration is incomplete or does not match the wallet."""

    pass


class UnsupportedExecutionMethod(ExecutionError):
    """No strategy is registered for the configured execution method."""

    pass


class NetworkSwitchFailed(ExecutionError):
    """The wallet could not be moved to the target network."""

    pass


class InvalidStatusTransition(CallForgeError):
    """A status change would break the execution lifecycle ordering."""

    pass


# ==================== Chain / Query ====================


class ChainClientError(CallForgeError):
    """Base exception for chain RPC errors."""

    pass


class QueryError(CallForgeError):
    """Raised when a read-only contract query cannot be performed."""

    pass


class UnsupportedOperation(CallForgeError):
    """The ecosystem adapter does not provide this operation."""

    pass
