"""Resolution of caller identities to internal users."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opportunity_workflows.exceptions import UnresolvedIdentityError, UserNotFoundError

if TYPE_CHECKING:
    from opportunity_workflows.core.models import UserRecord
    from opportunity_workflows.core.protocols import UserDirectory

__all__ = ["IdentityResolver"]

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolve external user references through the user directory.

    When a reference is unknown, non-strict resolution falls back to a configured
    system identity. There is no implicit fallback to an arbitrary user.

    Attributes:
        users: The user directory collaborator.
        system_user_id: Internal id of the fallback identity, if configured.
    """

    def __init__(self, users: UserDirectory, system_user_id: str | None = None) -> None:
        self.users = users
        self.system_user_id = system_user_id

    async def resolve(self, user_ref: str, *, strict: bool = False) -> UserRecord:
        """Resolve a user reference.

        Args:
            user_ref: External identity presented by the caller.
            strict: Disable the system identity fallback.

        Returns:
            The resolved user, or the system user when falling back.

        Raises:
            UserNotFoundError: If ``strict`` is set and the reference is unknown.
            UnresolvedIdentityError: If the reference is unknown and the system
                identity is not configured or does not exist.
        """
        user = await self.users.resolve_user(user_ref)
        if user is not None:
            return user

        if strict:
            raise UserNotFoundError(user_ref)

        if self.system_user_id:
            system_user = await self.users.get_user(self.system_user_id)
            if system_user is not None:
                logger.warning(
                    "User %r could not be resolved, acting as system user %s",
                    user_ref,
                    self.system_user_id,
                )
                return system_user

        raise UnresolvedIdentityError(user_ref, self.system_user_id)
