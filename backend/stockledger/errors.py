# backend/stockledger/errors.py
"""
Error taxonomy for the stock ledger and stock opname engine.

Every service raises one of these; routes translate them with
``http_status`` and ``code`` so clients can decide whether to retry.

RETRYABLE:
- DuplicateCode: re-allocate a product code and insert again
- StorageError: transient database failure, the same call may be repeated
- FinalizePending: opname adjustments posted, commit again to record history

NOT RETRYABLE:
- InsufficientStock, ItemNotFound, InvalidCategory, ValidationError
"""
from __future__ import annotations


class StockLedgerError(Exception):
    """Base class for all domain errors."""

    http_status = 400
    code = "STOCK_LEDGER_ERROR"
    retryable = False

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "retryable": self.retryable}


class ValidationError(StockLedgerError, ValueError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"


class InvalidCategory(StockLedgerError):
    code = "INVALID_CATEGORY"


class ItemNotFound(StockLedgerError):
    http_status = 404
    code = "ITEM_NOT_FOUND"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Item {item_code!r} not found")


class DuplicateCode(StockLedgerError):
    """An insert collided with an existing product code."""

    http_status = 409
    code = "DUPLICATE_CODE"
    retryable = True

    def __init__(self, item_code: str, message: str | None = None):
        self.item_code = item_code
        super().__init__(
            message
            or f"Product code {item_code!r} is already used by another item; allocate a new code and retry"
        )


class InsufficientStock(StockLedgerError):
    http_status = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_code: str, on_hand: int, requested_delta: int):
        self.item_code = item_code
        self.on_hand = on_hand
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for {item_code!r}: on hand {on_hand}, "
            f"movement of {requested_delta} would leave {on_hand + requested_delta}"
        )


class StorageError(StockLedgerError):
    """Transient persistence failure. Safe for the caller to retry."""

    http_status = 503
    code = "STORAGE_ERROR"
    retryable = True


class SessionNotFound(StockLedgerError):
    http_status = 404
    code = "SESSION_NOT_FOUND"


class ActiveSessionExists(StockLedgerError):
    http_status = 409
    code = "ACTIVE_SESSION_EXISTS"

    def __init__(self, device_id: str, session_id: str):
        self.device_id = device_id
        self.session_id = session_id
        super().__init__(
            f"Device {device_id!r} already has an active stock opname session ({session_id}); "
            f"resume it or cancel it first"
        )


class DuplicateLine(StockLedgerError):
    """Item already counted in this session; caller may re-add with replace=True."""

    http_status = 409
    code = "DUPLICATE_LINE"

    def __init__(self, item_code: str, counted_quantity: int):
        self.item_code = item_code
        self.counted_quantity = counted_quantity
        super().__init__(
            f"Item {item_code!r} is already in this session with counted quantity "
            f"{counted_quantity}; re-add to overwrite or cancel"
        )


class PartialCommitFailure(StockLedgerError):
    """
    Raised when an opname commit could not apply every adjustment.

    ``result`` is the CommitResult: ``result.movements`` were appended and
    stay appended, ``result.failures`` lists the lines still outstanding.
    """

    http_status = 409
    code = "PARTIAL_COMMIT_FAILURE"
    retryable = True

    def __init__(self, result):
        self.result = result
        super().__init__(
            f"Stock opname {result.session_id} {result.status}: "
            f"{len(result.movements)} adjustment(s) applied, {len(result.failures)} line(s) failed"
        )

    @property
    def applied_movements(self) -> list:
        return self.result.movements

    @property
    def failed_lines(self) -> list:
        return self.result.failures

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["result"] = self.result.to_dict()
        return payload


class FinalizePending(StorageError):
    """
    Raised when every opname adjustment is posted but writing history,
    monitoring or removing the draft failed.

    ``result.movements`` are durable and marked on the saved draft, so
    committing the session again posts nothing and only retries the
    finalize step.
    """

    code = "FINALIZE_PENDING"

    def __init__(self, result, cause: Exception | None = None):
        self.result = result
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Stock opname {result.session_id}: {len(result.movements)} adjustment(s) applied, "
            f"history not yet recorded{detail}"
        )

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["result"] = self.result.to_dict()
        return payload
