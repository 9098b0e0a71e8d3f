"""
Typed errors for the review bot.

Validation and not-found errors go straight back to whoever asked for the
mutation. Store and delivery errors are raised by the store and the notifier;
the reminder cycle recovers from them locally.
"""


class ReviewBotError(Exception):
    """Base class for all review bot errors."""


class ValidationError(ReviewBotError):
    """Item fields failed a required/enum check. Raised before any write."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid item")


class NotFoundError(ReviewBotError):
    """The referenced item id does not exist."""

    def __init__(self, item_id: int) -> None:
        self.item_id = item_id
        super().__init__(f"problem not found: {item_id}")


class StoreTransactionError(ReviewBotError):
    """The database failed mid-transaction; the transaction was rolled back."""


class DeliveryError(ReviewBotError):
    """The notifier could not deliver a message."""

    def __init__(self, recipient, message: str, attempts: int = 1) -> None:
        self.recipient = recipient
        self.attempts = attempts
        super().__init__(f"delivery to {recipient} failed: {message}")
