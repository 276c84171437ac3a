from app.core.db.crud.base import BaseDB
from app.core.db.crud.otp import OTPChallengeDB
from app.core.db.crud.refresh_token import RefreshTokenDB
from app.core.db.crud.session import UserSessionDB
from app.core.db.crud.user import UserDB

# Global CRUD instances - use these instead of creating new instances
user_db = UserDB()
otp_challenge_db = OTPChallengeDB()
user_session_db = UserSessionDB()
refresh_token_db = RefreshTokenDB()

__all__ = [
    # Classes (for type hints and subclassing)
    "BaseDB",
    "OTPChallengeDB",
    "RefreshTokenDB",
    "UserDB",
    "UserSessionDB",
    # Global instances (for actual usage)
    "user_db",
    "otp_challenge_db",
    "user_session_db",
    "refresh_token_db",
]
