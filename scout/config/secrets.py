"""
API key management for the research providers and the extractor.

Usage:
    from scout.config.secrets import get_perplexity_key

    # Raises MissingAPIKeyError if the key is not configured
    key = get_perplexity_key()

CLI check:
    python -m scout.config.secrets --check
"""

import os
import sys
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

# scout/config/secrets.py -> repo root
_REPO_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PATH = _REPO_ROOT / ".env"

if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH)
else:
    load_dotenv()


PERPLEXITY_KEY_NAME = "PERPLEXITY_API_KEY"
GROK_KEY_NAME = "GROK_API_KEY"
YOUTUBE_KEY_NAME = "YOUTUBE_API_KEY"
ANTHROPIC_KEY_NAME = "ANTHROPIC_API_KEY"

ALL_KEY_NAMES = (PERPLEXITY_KEY_NAME, GROK_KEY_NAME, YOUTUBE_KEY_NAME, ANTHROPIC_KEY_NAME)

# Which key each research provider needs
PROVIDER_KEY_NAMES = {
    "perplexity": PERPLEXITY_KEY_NAME,
    "grok": GROK_KEY_NAME,
    "youtube": YOUTUBE_KEY_NAME,
}


class MissingAPIKeyError(Exception):
    """Raised when a required API key is not configured."""
    pass


def _require(name: str) -> str:
    key = os.environ.get(name, "").strip()
    if not key:
        raise MissingAPIKeyError(
            f"{name} not found. "
            "Copy .env.example to .env and add your key."
        )
    return key


def get_perplexity_key() -> str:
    """
    Get Perplexity API key from environment.

    Raises:
        MissingAPIKeyError: If PERPLEXITY_API_KEY is not set
    """
    return _require(PERPLEXITY_KEY_NAME)


def get_grok_key() -> str:
    """Get the xAI (Grok) API key from environment."""
    return _require(GROK_KEY_NAME)


def get_youtube_key() -> str:
    """Get the YouTube Data API key from environment."""
    return _require(YOUTUBE_KEY_NAME)


def get_anthropic_key() -> str:
    """
    Get Anthropic API key from environment.

    Raises:
        MissingAPIKeyError: If ANTHROPIC_API_KEY is not set
    """
    return _require(ANTHROPIC_KEY_NAME)


def get_provider_key(provider: str) -> str:
    """Get the API key a research provider needs."""
    if provider not in PROVIDER_KEY_NAMES:
        raise ValueError(f"Unknown provider: {provider}")
    return _require(PROVIDER_KEY_NAMES[provider])


def check_keys() -> Dict[str, str]:
    """
    Check which API keys are configured.

    Returns:
        dict: Status of each key ("OK" or "MISSING")
    """
    return {
        name: "OK" if os.environ.get(name, "").strip() else "MISSING"
        for name in ALL_KEY_NAMES
    }


def _cli_check() -> int:
    """Print key status; returns a process exit code."""
    status = check_keys()
    all_ok = True

    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")
        if key_status == "MISSING":
            all_ok = False

    if not all_ok:
        print("\nTo configure keys:")
        print("  1. Copy .env.example to .env")
        print("  2. Add your API keys to .env")
        return 1

    print("\nAll keys configured.")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check API key configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check if API keys are configured"
    )

    args = parser.parse_args()

    if args.check:
        sys.exit(_cli_check())
    else:
        parser.print_help()
