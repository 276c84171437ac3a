"""Base class for classmethod singleton services."""


class SingletonService:
    """Mixin for services that keep their state on the class.

    Subclasses set ``cls._initialized = True`` at the end of their own
    ``init()``; its signature is left to each service.
    """

    _initialized: bool = False

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton state (test teardown)."""
        cls._initialized = False
