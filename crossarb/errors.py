# crossarb/errors.py
"""
Error taxonomy for the cross-chain arbitrage bot

Recovery differs per class:
- ConnectivityError: skip the iteration, retry next cycle
- NoRouteError: treat the leg as unprofitable
- TxFailedError: chain rejected it, do not retry
- TxExpiredError: can never land, resubmit with a fresh reference
- TxTimeoutError: gave up waiting, the same reference may still land
- ConfigurationError: fatal at startup
"""

from typing import Any, Dict, Optional


class ArbitrageError(Exception):
    """Base class for all bot errors"""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "ARBITRAGE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ArbitrageError):
    """Missing credentials or endpoints. The process must not start."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONFIG_ERROR", **kwargs)


class ConnectivityError(ArbitrageError):
    """RPC or HTTP API unreachable / returned a transport-level error"""

    def __init__(self, message: str, *, service: str, **kwargs):
        details = kwargs.pop("details", {})
        details["service"] = service
        super().__init__(message, code="CONNECTIVITY_ERROR", details=details, **kwargs)
        self.service = service


class NoRouteError(ArbitrageError):
    """A venue could not quote the requested swap"""

    def __init__(self, message: str, *, input_asset: str, output_asset: str, **kwargs):
        details = kwargs.pop("details", {})
        details["input_asset"] = input_asset
        details["output_asset"] = output_asset
        super().__init__(message, code="NO_ROUTE", details=details, **kwargs)
        self.input_asset = input_asset
        self.output_asset = output_asset


class TransactionError(ArbitrageError):
    """Base class for submitted transactions that did not confirm"""

    def __init__(self, message: str, *, tx_ref: str, code: str, **kwargs):
        details = kwargs.pop("details", {})
        details["tx_ref"] = tx_ref
        super().__init__(message, code=code, details=details, **kwargs)
        self.tx_ref = tx_ref


class TxFailedError(TransactionError):
    """The chain executed the transaction and reported an error"""

    def __init__(self, tx_ref: str, reason: str):
        super().__init__(
            f"Transaction failed: {reason}",
            tx_ref=tx_ref,
            code="TX_FAILED",
            details={"reason": reason},
        )
        self.reason = reason


class TxExpiredError(TransactionError):
    """Chain height passed the transaction's last valid height"""

    def __init__(self, tx_ref: str, expiry_height: int, current_height: int):
        super().__init__(
            f"Transaction not found and its reference block expired "
            f"(height {current_height} > {expiry_height})",
            tx_ref=tx_ref,
            code="TX_EXPIRED",
            details={"expiry_height": expiry_height, "current_height": current_height},
        )
        self.expiry_height = expiry_height
        self.current_height = current_height


class TxTimeoutError(TransactionError):
    """No terminal state within the polling budget"""

    def __init__(self, tx_ref: str, timeout: float):
        super().__init__(
            f"Transaction confirmation timed out after {timeout:.1f}s",
            tx_ref=tx_ref,
            code="TX_TIMEOUT",
            details={"timeout": timeout},
        )
        self.timeout = timeout
