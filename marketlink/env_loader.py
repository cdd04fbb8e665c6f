"""
Environment Variable Loader

Automatically loads environment variables from config/secrets.env at module import.
This ensures AI provider keys (Groq, OpenAI, Anthropic) and the Ollama URL are
available throughout the application.

Usage:
    # Just import this module anywhere - variables are auto-loaded
    import marketlink.env_loader

    # Or look up a key explicitly
    from marketlink.env_loader import get_api_key
    key = get_api_key("GROQ_API_KEY")
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from marketlink.logging_config import get_logger

logger = get_logger(__name__)

# Environment variable per AI provider credential
PROVIDER_KEY_NAMES = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def load_environment_variables(env_file: Optional[str] = None) -> bool:
    """
    Load environment variables from .env file.

    Args:
        env_file: Path to .env file (default: config/secrets.env)

    Returns:
        True if environment variables were loaded, False otherwise
    """
    # Default to config/secrets.env in project root
    if env_file is None:
        project_root = Path(__file__).parent.parent
        env_path = project_root / "config" / "secrets.env"
    else:
        env_path = Path(env_file)

    if not env_path.exists():
        logger.debug("Environment file not found: %s", env_path)
        return False

    # Don't override existing env vars
    load_dotenv(env_path, override=False)

    loaded = [name for name in PROVIDER_KEY_NAMES.values() if os.getenv(name)]
    logger.debug("Loaded environment from %s (keys: %s)", env_path, ", ".join(loaded) or "none")
    return True


# Auto-load on module import
_loaded = load_environment_variables()


def is_environment_loaded() -> bool:
    """Check if environment variables were successfully loaded."""
    return _loaded


def get_api_key(key_name: str, required: bool = False) -> Optional[str]:
    """
    Get an API key from environment variables.

    Args:
        key_name: Name of the environment variable (e.g., 'GROQ_API_KEY')
        required: If True, raise ValueError if key not found

    Returns:
        API key value or None if not found (empty strings count as missing)

    Raises:
        ValueError: If required=True and key not found
    """
    value = os.getenv(key_name) or None

    if value is None and required:
        raise ValueError(
            f"{key_name} not found in environment. "
            f"Add it to config/secrets.env or set it manually:\n"
            f"export {key_name}=your_key_here"
        )

    return value


def get_provider_key(provider: str) -> Optional[str]:
    """Credential for an AI provider, or None if not configured."""
    key_name = PROVIDER_KEY_NAMES.get(provider)
    if key_name is None:
        return None
    return get_api_key(key_name)


__all__ = [
    "PROVIDER_KEY_NAMES",
    "load_environment_variables",
    "is_environment_loaded",
    "get_api_key",
    "get_provider_key",
]
