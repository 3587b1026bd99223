"""
Error taxonomy for Flower Market.

Validation errors are surfaced to the caller and never retried.
Authorization errors are surfaced and logged, with no state change.
Notification and persistence errors are recovered locally by the services.
"""

from typing import Optional


class FlowerMarketError(Exception):
    """Base class for all service errors."""


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(FlowerMarketError):
    """Bad input shape. Rejected request, not retried."""


class InvalidUserId(ValidationError):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__("userId is required")
        self.user_id = user_id


class TooFewContacts(ValidationError):
    def __init__(self, received: int, valid: int, required: int):
        super().__init__(
            f"At least {required} valid contacts are required, got {valid} "
            f"(received {received})"
        )
        self.received = received
        self.valid = valid
        self.required = required


class InvalidImportSource(ValidationError):
    def __init__(self, source: str):
        super().__init__(f"Unknown import source: {source!r}")
        self.source = source


class InvalidTransition(ValidationError):
    def __init__(self, user_id: str, state: str, decision: str):
        super().__init__(f"Cannot {decision} user {user_id} in state {state}")
        self.user_id = user_id
        self.state = state
        self.decision = decision


class InvalidActionToken(ValidationError):
    def __init__(self, token: str):
        super().__init__(f"Malformed action token: {token!r}")
        self.token = token


class UserNotFound(FlowerMarketError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


# =============================================================================
# AUTHORIZATION
# =============================================================================

class AuthorizationError(FlowerMarketError):
    """Caller is not allowed to perform the action."""


class Forbidden(AuthorizationError):
    def __init__(self, operator_id: str, action: str):
        super().__init__(f"{operator_id} is not allowed to {action}")
        self.operator_id = operator_id
        self.action = action


# =============================================================================
# PUBLICATION GATE
# =============================================================================

class PublishDenied(FlowerMarketError):
    """Publication is not allowed for this user."""

    def __init__(self, user_id: str, message: str):
        super().__init__(message)
        self.user_id = user_id


class UserUnknown(PublishDenied):
    def __init__(self, user_id: str):
        super().__init__(user_id, "User not found. Upload your contacts first.")


class NotApproved(PublishDenied):
    def __init__(self, user_id: str, state: str):
        super().__init__(
            user_id,
            "Your account has not been approved by an administrator yet."
        )
        self.state = state


class NoContacts(PublishDenied):
    def __init__(self, user_id: str):
        super().__init__(user_id, "Contacts are not uploaded. Import your contacts first.")


# =============================================================================
# INFRASTRUCTURE
# =============================================================================

class NotificationDeliveryError(FlowerMarketError):
    """Outbound message could not be delivered."""

    def __init__(self, channel_id: str, message: str):
        super().__init__(f"Delivery to {channel_id} failed: {message}")
        self.channel_id = channel_id


class PersistenceError(FlowerMarketError):
    """Durable storage read or write failed."""


class GoogleAPIError(FlowerMarketError):
    """Google OAuth or People API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
