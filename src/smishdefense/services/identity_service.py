"""Service providing the anonymous identity of a device."""
import json
import logging
import secrets
import string
import time
from pathlib import Path
from typing import Optional

from smishdefense.models.training_models import Identity

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_user_id() -> str:
    """Generate a user id from the current time plus a random base36 suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def default_user_name(user_id: str) -> str:
    """Display name used when the user gives none."""
    return f"User_{user_id[-6:]}"


class IdentityProvider:
    """Creates and keeps the identity of one device in a small JSON file."""

    def __init__(self, path: Path):
        """Initialize the provider with the identity file location."""
        self.path = Path(path)

    def _read(self) -> Optional[Identity]:
        """Read the stored identity; anything unreadable counts as absent."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            user_id = data["userId"]
            user_name = data.get("userName")
            if not isinstance(user_id, str) or not user_id:
                raise ValueError("userId must be a non-empty string")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable identity at {self.path}: {e}")
            return None
        if not isinstance(user_name, str) or not user_name.strip():
            user_name = default_user_name(user_id)
        return Identity(user_id=user_id, user_name=user_name)

    def _write(self, identity: Identity) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(identity.to_dict(), indent=2), encoding="utf-8")

    def exists(self) -> bool:
        """Check if this device already has a usable identity."""
        return self._read() is not None

    def get_identity(self) -> Optional[Identity]:
        """Get the stored identity without creating one."""
        return self._read()

    def get_or_create_identity(self, user_name: Optional[str] = None) -> Identity:
        """Get the stored identity, or generate and persist a new one.

        ``user_name`` is only used when a new identity is generated; an
        existing identity is returned unchanged.
        """
        identity = self._read()
        if identity:
            return identity

        user_id = generate_user_id()
        name = user_name.strip() if user_name and user_name.strip() else default_user_name(user_id)
        identity = Identity(user_id=user_id, user_name=name)
        try:
            self._write(identity)
        except OSError as e:
            logger.error(f"Could not persist identity to {self.path}: {e}")
        logger.info(f"User initialized: {identity.user_name} ({identity.user_id})")
        return identity

    def clear(self) -> None:
        """Forget the identity of this device."""
        self.path.unlink(missing_ok=True)
        logger.info(f"Identity cleared at {self.path}")
