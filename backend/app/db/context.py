"""Request context carrying the caller identity."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the authenticated user, if any.

    Conversations are owned by user_id; a context without a user can only
    use guest sessions.
    """

    user_id: int | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None
