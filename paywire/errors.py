"""
Error Taxonomy Module

Every failure that crosses a component boundary is one of these types.
Lower-level driver errors are wrapped in StorageFailure by the repository
that caught them; the original exception stays available as __cause__.
"""


class PaywireError(Exception):
    """Base class for all paywire errors"""

    #: Message safe to show to an API caller
    public_message = "Cannot complete request"

    def __init__(self, message: str = ""):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(PaywireError):
    """Malformed input caught before the engine is called"""
    public_message = "Bad request"


class InvalidSum(ValidationError):
    """Transfer magnitude is not a positive amount"""
    public_message = "Incorrect sum"


class NotFound(PaywireError):
    """Referenced entity does not exist"""
    public_message = "Not found"


class SenderNotFound(NotFound):
    public_message = "Sender not found"


class RecipientNotFound(NotFound):
    public_message = "Recipient not found"


class TransferNotFound(NotFound):
    public_message = "Transfer not found"


class AccountNotFound(NotFound):
    public_message = "Account not found"


class Unauthorized(PaywireError):
    """Missing, expired or tampered credential"""
    public_message = "Authorization required"


class Forbidden(PaywireError):
    """Insufficient tier or caller is not a party to the record"""
    public_message = "Insufficient authority to complete request"


class InsufficientFunds(PaywireError):
    """Conditional debit refused: balance would drop below zero"""
    public_message = "Insufficient funds"


class Conflict(PaywireError):
    """Request conflicts with current state"""
    public_message = "Request conflicts with current state"


class SelfTransfer(Conflict):
    public_message = "Invalid recipient ID"


class AlreadyExists(Conflict):
    public_message = "Already exists"


class StorageFailure(PaywireError):
    """
    Wrapped lower-level storage failure.

    The message is internal diagnostics only; API responses use
    public_message instead.
    """
    public_message = "Cannot complete request now"
