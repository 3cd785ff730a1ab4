class ReferralError(ValueError):
    pass


class UnknownIdentity(ReferralError, KeyError):
    """Address (or identity) has not been registered."""

    def __init__(self, address: str):
        super().__init__(f"User not found: {address}")
        self.address = address

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class InvalidOperation(ReferralError):
    """Referral precondition violated."""


class SelfReferralError(InvalidOperation):
    pass


class AlreadyReferredError(InvalidOperation):
    pass


class CycleError(InvalidOperation):
    pass


class InvalidArgument(ReferralError):
    """Scalar input out of range."""


class CollisionExhausted(ReferralError):
    """No unique token could be derived for a new address."""
