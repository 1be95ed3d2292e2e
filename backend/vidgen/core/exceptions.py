class VidGenError(Exception):
    """Base exception for the VidGen platform."""

    pass


class EntitlementError(VidGenError):
    """Raised when a user is not entitled to the requested action.

    ``reason`` is the user-facing message produced by the entitlement evaluator.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidPlanError(EntitlementError):
    """Raised when a user's plan type does not resolve to a plan config."""

    pass


class PlanExpiredError(EntitlementError):
    """Raised when a paid plan is past its expiry."""

    pass


class ToolNotAllowedError(EntitlementError):
    """Raised when the user's plan does not include the requested tool."""

    pass


class DailyLimitReachedError(EntitlementError):
    """Raised when the user has used up today's video quota."""

    pass


class BulkLimitExceededError(EntitlementError):
    """Raised when a bulk request exceeds the plan's prompt or quota limits."""

    pass


class VoiceLimitExceededError(EntitlementError):
    """Raised when a voice request exceeds the character allowance."""

    pass


class PoolExhaustedError(VidGenError):
    """Raised when no usable key remains in a provider pool."""

    def __init__(self, provider: str, message: str | None = None):
        self.provider = provider
        super().__init__(message or f"No usable {provider} key available")


class DuplicateKeyError(VidGenError):
    """Raised when a secret is already present in the provider pool."""

    def __init__(self, provider: str, label: str):
        self.provider = provider
        self.label = label
        super().__init__(f"Key already exists in the {provider} pool ({label})")


class KeyNotFoundError(VidGenError):
    """Raised when a key id does not exist in the provider pool."""

    def __init__(self, provider: str, key_id: str):
        self.provider = provider
        self.key_id = key_id
        super().__init__(f"Key {key_id} not found in the {provider} pool")


class UserNotFoundError(VidGenError):
    """Raised when a user id does not exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class ProviderCallError(VidGenError):
    """Raised by provider clients when an outbound call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
