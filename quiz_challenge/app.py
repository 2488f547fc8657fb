"""
Command line entry point for the Quiz Challenge bot.

Reads the JSON configuration file, checks the quiz settings it holds,
sets up logging and runs the bot. ``--check`` stops after the settings
check, which is handy before deploying a new configuration.

Environment Variables:
    DISCORD_BOT_TOKEN: Your Discord bot token (overrides the config file)
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config_manager import ConfigManager

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


class ConfigFileError(Exception):
    """Raised when the configuration file cannot be used."""
    pass


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load the configuration file.

    Raises:
        ConfigFileError: If the file is missing, unreadable or not a JSON object
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigFileError(f"{config_path} not found")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigFileError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"Error loading {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigFileError(f"{config_path} must contain a JSON object")
    return config


def check_quiz_settings(config: Dict[str, Any]) -> Tuple[ConfigManager, List[str]]:
    """
    Apply the quiz section to a fresh ConfigManager.

    Returns:
        The prepared manager and a list of problems; rejected values keep their defaults
    """
    config_manager = ConfigManager()
    problems = config_manager.apply_config(config)
    problems.extend(config_manager.validate_settings()["issues"])
    return config_manager, problems


def get_bot_token(config: Dict[str, Any]) -> Optional[str]:
    """Get bot token from environment variable or config file."""
    # Environment variable takes precedence
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        return None
    return token


def setup_logging_from_config(config: Dict[str, Any]) -> None:
    """Set up logging based on configuration."""
    log_config = config.get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))

    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "quiz.log", encoding='utf-8')
        ]
    )

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Quiz Challenge Discord bot")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH,
                        help=f"path to the JSON configuration file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--check", action="store_true",
                        help="check the quiz settings and exit without connecting")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigFileError as e:
        print(f"❌ Error: {e}")
        return 1

    config_manager, problems = check_quiz_settings(config)
    for problem in problems:
        print(f"⚠️ Rejected setting: {problem}")

    if args.check:
        print(config_manager.get_settings_summary())
        return 1 if problems else 0

    token = get_bot_token(config)
    if token is None:
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print(f"  2. Update the 'token' field in {args.config}")
        return 1

    setup_logging_from_config(config)

    from .bot import run_bot
    try:
        print("🧠 Starting Quiz Challenge bot...")
        asyncio.run(run_bot(token, config, config_manager))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
