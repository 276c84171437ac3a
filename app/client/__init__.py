from app.client.refresh import (
    AuthenticatedClient,
    AuthState,
    LoggedOutError,
    RefreshCoordinator,
)

__all__ = [
    "AuthenticatedClient",
    "AuthState",
    "LoggedOutError",
    "RefreshCoordinator",
]
