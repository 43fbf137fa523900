from typing import Iterable, Optional

import bcrypt

from clinic_stock.config import get_config
from clinic_stock.data.interface import Authenticator
from clinic_stock.data.models import User
from clinic_stock.errors import AuthenticationFailed
from clinic_stock.logging import get_logger

class BcryptAuthenticator(Authenticator):
    """Verifies passwords against salted bcrypt hashes using the AppConfig cost factor."""
    def __init__(self, rounds: Optional[int] = None) -> None:
        """Initializes the authenticator.

        Args:
            rounds (int, optional): bcrypt cost factor. Defaults to get_config().password_hash_rounds.
        """
        self.rounds = rounds or get_config().password_hash_rounds
        self.logger = get_logger(__name__)

    def hash_password(self, password: str) -> str:
        """Returns a salted hash suitable for User.password_hash.

        Raises:
            ValueError: If the password is empty.
        """
        if not password:
            raise ValueError("Password must not be empty.")
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, user: User, password: str) -> bool:
        """Checks a password against the user's stored hash.

        Users without a stored hash can never log in.
        """
        if not user.password_hash or not password:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8"))
        except ValueError:
            self.logger.warning(f"Malformed password hash for user {user.id}")
            return False

def authenticate(users: Iterable[User], username: str, password: str, authenticator: Authenticator) -> User:
    """Returns the user matching the credentials.

    Raises:
        AuthenticationFailed: If the username is unknown or the password is wrong.
    """
    user = next((u for u in users if u.username == username), None)
    if user is None or not authenticator.verify(user, password):
        raise AuthenticationFailed("Invalid username or password.")
    return user
