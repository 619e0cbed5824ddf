# atlas/auth.py
import hmac
from typing import Optional

from atlas.config import DEV_ADMIN_SECRET, settings
from atlas.logging_config import logger


class AdminGate:
    """Allows or denies a mutating operation based on the shared admin secret."""

    def __init__(self, secret: str):
        self.secret = secret

    def authorize(self, supplied: Optional[str]) -> bool:
        if not supplied or not self.secret:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), self.secret.encode("utf-8"))


def get_admin_gate() -> AdminGate:
    return AdminGate(settings.ADMIN_SECRET)


def warn_if_dev_secret():
    if settings.ADMIN_SECRET == DEV_ADMIN_SECRET:
        logger.warning("ADMIN_SECRET is not set; using the development default. Do not run like this in production.")
