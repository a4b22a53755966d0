"""
User provisioning. Token subjects become user rows on first authenticated call,
so ownership foreign keys always resolve.
"""

import logging

from sqlalchemy.exc import IntegrityError

from ..core.auth import AuthenticatedUser
from ..core.database import Database
from ..models.user import User

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(self, db: Database):
        self._db = db

    async def ensure(self, identity: AuthenticatedUser) -> User:
        """Return the user row for an identity, creating it if needed."""
        async with self._db.session() as session:
            existing = await session.get(User, identity.user_id)
            if existing:
                return existing

        try:
            async with self._db.transaction() as session:
                user = User(id=identity.user_id, email=identity.email[:64])
                session.add(user)
            logger.info("Provisioned user %s", identity.user_id)
            return user
        except IntegrityError:
            # Concurrent first request for the same subject won the insert
            async with self._db.session() as session:
                return await session.get(User, identity.user_id)
