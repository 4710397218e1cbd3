"""Global functions and variables, used across various modules."""

import getpass
import logging
import os
from logging.handlers import RotatingFileHandler

import keyring
from keyring.backends import null
from platformdirs import user_data_dir
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import NestedCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.spinner import Spinner
from rich.text import Text

logger = logging.getLogger(__name__)

# Everything the app writes lives under one per-user directory
APP_DIR = user_data_dir("NexusChat")
CONFIG_DIR = os.path.join(APP_DIR, "config")
DATA_DIR = os.path.join(APP_DIR, "data")
LOG_DIR = os.path.join(APP_DIR, "logs")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.json")
LOG_FILE = os.path.join(LOG_DIR, "nexuschat.log")
USER_NAME = getpass.getuser()

KEYRING_SERVICE = "NexusChatAPI"

for _directory in (CONFIG_DIR, DATA_DIR, LOG_DIR):
    os.makedirs(_directory, exist_ok=True)

CONSOLE = Console()

PROMPT_PREFIX = HTML("<seagreen>❯ </seagreen>")

COMPLETER_STYLER = Style(
    [
        ("completion-menu.completion", "bg:#1c1c1c #d0d0d0"),
        ("completion-menu.completion.current", "bg:#2e8b57 #000000"),
        ("completion-menu.meta.completion", "bg:#1c1c1c #8a8a8a"),
        ("completion-menu.meta.completion.current", "bg:#2e8b57 #000000"),
    ]
)

# `!key` takes a subcommand, everything else is a bare word
COMMAND_COMPLETER = NestedCompleter.from_nested_dict(
    {
        "!new": None,
        "!sessions": None,
        "!switch": None,
        "!delete": None,
        "!clear": None,
        "!cls": None,
        "!image": None,
        "!unattach": None,
        "!key": {"add": None, "list": None, "remove": None},
        "!config": None,
        "!model": None,
        "!vision": None,
        "!endpoint": None,
        "!theme": None,
        "!h": None,
        "!help": None,
        "!q": None,
        "!quit": None,
    }
)

# Created on first use, constructing it needs a real terminal
_root_session: PromptSession | None = None


def init_logger(level: int = logging.WARNING):
    """Routes every log record to a rotating file in LOG_DIR."""
    handler = RotatingFileHandler(
        LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )


def log_exception(e: Exception, context: str = ""):
    """Logs `e` with its traceback, prefixed by what the caller was doing"""
    logger.error(context or type(e).__name__, exc_info=(type(e), e, e.__traceback__))


def setup_keyring_backend():
    """Swaps in the null keyring when no OS backend can be loaded."""
    try:
        backend = keyring.get_keyring()
    except Exception as e:
        keyring.set_keyring(null.Keyring())
        logger.error(f"No usable keyring backend, keys will not be mirrored: {e}")
        return
    logger.debug(f"Keyring backend: {type(backend).__name__}")


def retrieve_key() -> str:
    """
    Looks for an API key outside of the pool.\n
    Order: GROQ_API_KEY env variable, then the OS keyring, else an empty string
    """
    api_key = os.getenv("GROQ_API_KEY", "")
    if not api_key:
        try:
            api_key = keyring.get_password(KEYRING_SERVICE, USER_NAME) or ""
        except Exception as e:
            logger.error(f"Keyring lookup failed: {e}")
    return api_key.strip()


def spinner_constructor(content: str) -> Spinner:
    return Spinner("moon", text=Text(content, style="bold medium_orchid"))


def root_prompt() -> str:
    global _root_session
    if _root_session is None:
        _root_session = PromptSession(
            PROMPT_PREFIX,
            completer=COMMAND_COMPLETER,
            style=COMPLETER_STYLER,
            complete_while_typing=False,
        )
    return _root_session.prompt()
