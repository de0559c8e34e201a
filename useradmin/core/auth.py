"""Password hashing and credential checks."""

import secrets

import bcrypt as _bcrypt

from .models import User
from .storage import UserStore


class AuthManager:
    """bcrypt password handling for user accounts."""

    def __init__(self, bcrypt_rounds: int = 12):
        """Initialize auth manager.

        Args:
            bcrypt_rounds: Cost factor for bcrypt (12 recommended).
        """
        self.bcrypt_rounds = bcrypt_rounds

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password.

        Returns:
            Bcrypt hash string.
        """
        password_bytes = password.encode("utf-8")
        salt = _bcrypt.gensalt(rounds=self.bcrypt_rounds)
        hashed = _bcrypt.hashpw(password_bytes, salt)
        return hashed.decode("utf-8")

    def verify_password(self, password: str, hash_str: str) -> bool:
        """Verify a password against a hash.

        Args:
            password: Plain text password.
            hash_str: Bcrypt hash to verify against.

        Returns:
            True if password matches.
        """
        try:
            return _bcrypt.checkpw(password.encode("utf-8"), hash_str.encode("utf-8"))
        except ValueError:
            return False

    def friendly_token(self, length: int = 20) -> str:
        """Generate a random URL-safe token, used as a temporary password.

        Args:
            length: Length of the token.

        Returns:
            Random string without ambiguous characters.
        """
        token = secrets.token_urlsafe(length)[:length]
        return token.translate(str.maketrans("lIO0", "sxyz"))

    def authenticate(self, store: UserStore, username: str, password: str) -> User | None:
        """Look up a user and check their password.

        Args:
            store: User store.
            username: Username (case-insensitive).
            password: Plain text password.

        Returns:
            The user if the credentials are valid, None otherwise.
        """
        user = store.find_by_username(username)
        if user is None or not user.password_hash:
            return None
        if not self.verify_password(password, user.password_hash):
            return None
        return user
