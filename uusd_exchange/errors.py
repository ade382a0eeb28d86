"""Exception hierarchy and failure classification for exchange operations."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

# Revert reason the pool's oracle library emits when a price feed is outdated.
ORACLE_STALE_MARKER = "stale stable/usd data"

_USER_REJECTION_PHRASES = ("user rejected", "rejected", "denied")
_GAS_PHRASES = ("out of gas", "intrinsic gas too low", "gas required exceeds", "gas")


class ExchangeError(Exception):
    """Base exception for exchange errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "ExchangeError",
        details: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize error.

        Args:
            message: Human-readable error message
            error_type: Type/category of error
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary format for CLI and API output."""
        result = {
            "success": False,
            "error": self.message,
            "error_type": self.error_type,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ExchangeError):
    """Error raised when input validation fails before touching the ledger."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        constraint: Optional[str] = None,
    ):
        """
        Initialize validation error.

        Args:
            message: Human-readable error message
            field: Name of the field that failed validation
            value: The invalid value
            constraint: Description of the constraint that was violated
        """
        details = {}
        if field is not None:
            details["field"] = field
        if value is not None:
            details["value"] = value
        if constraint is not None:
            details["constraint"] = constraint

        super().__init__(message=message, error_type="ValidationError", details=details)


class TransportError(ExchangeError):
    """Error raised when an RPC endpoint cannot be reached or answers garbage."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        details = {"endpoint": endpoint} if endpoint else {}
        super().__init__(message=message, error_type="TransportError", details=details)
        self.endpoint = endpoint


class LedgerRpcError(ExchangeError):
    """Error raised when a node answers with a JSON-RPC error payload."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        endpoint: Optional[str] = None,
    ):
        """
        Initialize RPC error.

        Args:
            message: The node's error message, unmodified
            code: JSON-RPC error code
            data: JSON-RPC error data (often ABI-encoded revert data)
            endpoint: Endpoint that produced the error
        """
        details: dict[str, Any] = {}
        if code is not None:
            details["code"] = code
        if data is not None:
            details["data"] = data
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(message=message, error_type="LedgerRpcError", details=details)
        self.code = code
        self.data = data
        self.endpoint = endpoint

    @property
    def is_execution_revert(self) -> bool:
        return self.code == 3 or "execution reverted" in self.message.lower()


class OracleStaleError(ExchangeError):
    """Error raised when the pool rejects a call because a price feed is stale."""

    def __init__(self, original_message: str):
        super().__init__(
            message=(
                "Price oracle data is outdated. The collateral price feed must be "
                "refreshed by oracle keepers before this operation can proceed. "
                "This usually resolves on its own; please try again shortly."
            ),
            error_type="OracleStaleError",
            details={"original_message": original_message},
        )
        self.original_message = original_message


class UserCancelledError(ExchangeError):
    """Error raised when the signer declines a transaction."""

    def __init__(self, message: str = "Transaction was cancelled by user."):
        super().__init__(message=message, error_type="UserCancelledError")


class OutOfGasError(ExchangeError):
    """Error raised when a transaction runs out of gas."""

    def __init__(self, original_message: str):
        super().__init__(
            message=(
                "Transaction failed due to insufficient gas. This may be caused by "
                "network congestion. Please try again with a higher gas limit."
            ),
            error_type="OutOfGasError",
            details={"original_message": original_message},
        )
        self.original_message = original_message


class TransactionRevertedError(ExchangeError):
    """Error raised when a mined transaction's receipt reports failure."""

    def __init__(self, tx_hash: str, operation: str = ""):
        label = f"{operation} transaction" if operation else "Transaction"
        super().__init__(
            message=f"{label} {tx_hash} was reverted on-chain.",
            error_type="TransactionRevertedError",
            details={"tx_hash": tx_hash},
        )
        self.tx_hash = tx_hash


class ReceiptTimeoutError(ExchangeError):
    """Error raised when no receipt shows up within the configured timeout."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(
            message=f"Transaction {tx_hash} was not mined within {timeout:g} seconds.",
            error_type="ReceiptTimeoutError",
            details={"tx_hash": tx_hash, "timeout": timeout},
        )
        self.tx_hash = tx_hash


class RedemptionNotAllowedError(ExchangeError):
    """Error raised when the dollar TWAP is above the redeem threshold."""

    def __init__(self, twap: int, threshold: int):
        super().__init__(
            message=(
                "Cannot redeem at this time: the dollar price is too high relative "
                "to the redeem threshold. Please try again later."
            ),
            error_type="RedemptionNotAllowedError",
            details={"twap": twap, "redeem_price_threshold": threshold},
        )


class MintNotAllowedError(ExchangeError):
    """Error raised when the dollar TWAP is below the mint threshold."""

    def __init__(self, twap: int, threshold: int):
        super().__init__(
            message=(
                "Cannot mint at this time: the dollar price is too low relative "
                "to the mint threshold. Please try again later."
            ),
            error_type="MintNotAllowedError",
            details={"twap": twap, "mint_price_threshold": threshold},
        )


class CollateralPausedError(ExchangeError):
    """Error raised when the selected collateral has the operation paused."""

    def __init__(self, symbol: str, operation: str):
        super().__init__(
            message=f"{operation.capitalize()} is temporarily paused for {symbol}.",
            error_type="CollateralPausedError",
            details={"symbol": symbol, "operation": operation},
        )


class PricingError(ExchangeError):
    """Error raised when a quote cannot be computed from the given state."""

    def __init__(self, message: str):
        super().__init__(message=message, error_type="PricingError")


class InsufficientBalanceError(ExchangeError):
    """Error raised when the account holds less than the amount it wants to spend."""

    def __init__(self, symbol: str, balance: int, required: int):
        super().__init__(
            message=f"Insufficient {symbol} balance.",
            error_type="InsufficientBalanceError",
            details={"symbol": symbol, "balance": balance, "required": required},
        )


class ProtocolStateError(ExchangeError):
    """Error raised when pool parameters read from the ledger are implausible."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message=message, error_type="ProtocolStateError", details=details)


class OperationInProgressError(ExchangeError):
    """Error raised when a second write flow starts before the first resolves."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Another operation ({operation}) is still in progress.",
            error_type="OperationInProgressError",
            details={"operation": operation},
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    USER_CANCELLED = "user_cancelled"
    OUT_OF_GAS = "out_of_gas"
    ORACLE_STALE = "oracle_stale"
    REVERTED = "reverted"
    PENDING = "pending"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    original: BaseException

    @property
    def retryable(self) -> bool:
        return self.kind in (
            ErrorKind.OUT_OF_GAS,
            ErrorKind.ORACLE_STALE,
            ErrorKind.TRANSPORT,
        )


def is_oracle_stale(message: str) -> bool:
    """Return True when an error message carries the oracle staleness marker."""
    lowered = message.lower()
    return ORACLE_STALE_MARKER in lowered or ("stale" in lowered and "data" in lowered)


def _raw_message(error: BaseException) -> str:
    if isinstance(error, ExchangeError):
        return error.message
    return str(error)


_LOCAL_REFUSALS = (
    ValidationError,
    RedemptionNotAllowedError,
    MintNotAllowedError,
    CollateralPausedError,
    InsufficientBalanceError,
    OperationInProgressError,
)


def classify_error(error: BaseException) -> ClassifiedError:
    """Sort a failure into one of the user-facing error kinds.

    Typed errors map directly. Anything else is matched on its message:
    signer rejections, then oracle staleness, then gas exhaustion. The
    remainder passes through with the original message intact.
    """
    if isinstance(error, _LOCAL_REFUSALS):
        return ClassifiedError(ErrorKind.VALIDATION, error.message, error)
    if isinstance(error, UserCancelledError):
        return ClassifiedError(ErrorKind.USER_CANCELLED, error.message, error)
    if isinstance(error, OracleStaleError):
        return ClassifiedError(ErrorKind.ORACLE_STALE, error.message, error)
    if isinstance(error, OutOfGasError):
        return ClassifiedError(ErrorKind.OUT_OF_GAS, error.message, error)
    if isinstance(error, TransactionRevertedError):
        return ClassifiedError(ErrorKind.REVERTED, error.message, error)
    if isinstance(error, ReceiptTimeoutError):
        return ClassifiedError(ErrorKind.PENDING, error.message, error)
    if isinstance(error, TransportError):
        return ClassifiedError(ErrorKind.TRANSPORT, error.message, error)

    message = _raw_message(error)
    lowered = message.lower()

    if any(phrase in lowered for phrase in _USER_REJECTION_PHRASES):
        return ClassifiedError(
            ErrorKind.USER_CANCELLED, UserCancelledError().message, error
        )
    if is_oracle_stale(message):
        return ClassifiedError(
            ErrorKind.ORACLE_STALE, OracleStaleError(message).message, error
        )
    if any(phrase in lowered for phrase in _GAS_PHRASES):
        return ClassifiedError(ErrorKind.OUT_OF_GAS, OutOfGasError(message).message, error)

    return ClassifiedError(ErrorKind.UNKNOWN, message, error)


def format_error_response(error: Exception) -> dict[str, Any]:
    """
    Format any exception into a standardized error response.

    Args:
        error: The exception to format

    Returns:
        Dictionary with standardized error format
    """
    if isinstance(error, ExchangeError):
        return error.to_dict()

    classified = classify_error(error)
    return {
        "success": False,
        "error": classified.message,
        "error_type": type(error).__name__,
    }
