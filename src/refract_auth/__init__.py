"""Refract authentication client.

OpenID Connect Authorization Code flow with PKCE: login, callback handling,
token persistence with transparent refresh, and logout.
"""

__version__ = "0.1.0"

from refract_auth.config import Config, ConfigError, load_config
from refract_auth.oauth.session import AuthStatus, SessionManager, create_session_manager

__all__ = [
    "AuthStatus",
    "Config",
    "ConfigError",
    "SessionManager",
    "__version__",
    "create_session_manager",
    "load_config",
]
