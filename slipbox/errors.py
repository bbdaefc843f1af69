# slipbox/errors.py


class SlipboxError(Exception):
    kind = "error"
    retryable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }


class NotFoundError(SlipboxError, LookupError):
    """
    The referenced item or category does not exist, or belongs to another
    owner. Both cases look the same to the caller.
    """
    kind = "not_found"


class InvalidArgumentError(SlipboxError, ValueError):
    kind = "invalid_argument"


class ConflictOnConstraintError(SlipboxError):
    """
    The store rejected a write on a uniqueness constraint. The two-phase order
    write should make this impossible, so it is reported as an internal error.
    """
    kind = "conflict_on_constraint"


class TransactionFailureError(SlipboxError):
    """Store-level abort (timeout, deadlock, lost connection). Safe to retry."""
    kind = "transaction_failure"
    retryable = True
