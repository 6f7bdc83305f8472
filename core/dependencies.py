from fastapi import Request

from core.settings import Settings

# Settings singleton
_settings = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure startup() was called."
    return _settings


def init_settings():
    """Initialize settings singleton."""
    global _settings
    _settings = Settings()


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None


# Collaborators built in the lifespan handler and stored on app.state


def get_gateway(request: Request):
    """Dependency that provides the webhook gateway."""
    return request.app.state.gateway


def get_provider_client(request: Request):
    """Dependency that provides the Stripe provider client."""
    return request.app.state.provider_client


def get_sink(request: Request):
    """Dependency that provides the persistence sink."""
    return request.app.state.sink
