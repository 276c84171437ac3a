from app.core.db.models.user import User
from app.core.db.models.otp import OTPChallenge
from app.core.db.models.session import UserSession
from app.core.db.models.refresh_token import RefreshToken

__all__ = [
    "OTPChallenge",
    "RefreshToken",
    "User",
    "UserSession",
]
