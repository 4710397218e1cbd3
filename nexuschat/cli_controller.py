"""Command interactivity logic lives here."""

import sys

from keyring import set_password
from keyring.errors import KeyringError
from prompt_toolkit import prompt
from prompt_toolkit.completion import PathCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import InMemoryHistory
from rich.markup import escape

from nexuschat.globals import (
    COMPLETER_STYLER,
    CONSOLE,
    KEYRING_SERVICE,
    USER_NAME,
    log_exception,
)
from nexuschat.key_manager import mask


class CLIController:
    """Handles and supports all command input"""

    def __init__(
        self,
        config,
        sessions,
        keys,
        filemanager,
        panel,
        ui,
    ):
        self.config = config
        self.ui = ui
        self.sessions = sessions
        self.keys = keys
        self.filemanager = filemanager
        self.panel = panel
        self.filepath_history = InMemoryHistory()

        # Command dict
        self.commands = {
            "!h": self.spawn_help_chart,
            "!help": self.spawn_help_chart,
            "!new": self.new_session,
            "!sessions": self.list_sessions,
            "!switch": self.switch_session,
            "!delete": self.delete_session,
            "!clear": self.clear_session,
            "!image": self.attach_image,
            "!unattach": self.unattach_image,
            "!key add": self.add_key,
            "!key remove": self.remove_key,
            "!key list": self.list_keys,
            "!config": self.spawn_settings_chart,
            "!model": self.set_text_model,
            "!vision": self.set_vision_model,
            "!endpoint": self.set_endpoint,
            "!theme": self.set_code_theme,
            "!cls": CONSOLE.clear,
            "!q": sys.exit,
            "!quit": sys.exit,
        }

        self.session_prompt = HTML("Enter a chat ID<seagreen>:</seagreen> ")

    # <~~HELPERS~~>
    def _prompt_wrapper(
        self, prefix, cancel_msg="Canceled.", allow_empty=False, **kwargs
    ) -> str | None:
        """Prompt_toolkit wrapper for validating input."""
        try:
            # **kwargs passes completers, styles, history, etc automatically
            user_input = prompt(prefix, **kwargs)
            stripped = user_input.strip()
            if not stripped and not allow_empty:
                CONSOLE.print("[dim]No input detected.[/dim]\n")
                return None
            return stripped
        except (KeyboardInterrupt, EOFError):
            CONSOLE.print(f"[dim]{cancel_msg}[/dim]\n")
            return None

    def _confirm(self, question: str) -> bool:
        choice = self._prompt_wrapper(
            HTML(f"{question} (<seagreen>y</seagreen>/<ansired>N</ansired>): "),
            allow_empty=True,
        )
        return bool(choice) and choice.lower() in ("y", "yes")

    def _session_id_prompt(self) -> str | None:
        """Lists chats, then asks for one of their IDs"""
        if not self.list_sessions():
            return None
        session_id = self._prompt_wrapper(
            self.session_prompt,
            completer=self.filemanager.session_completer(),
            style=COMPLETER_STYLER,
        )
        if not session_id:
            return None
        if session_id not in self.sessions.store.ids():
            CONSOLE.print(f"[red]No chat found with ID:[/red] {escape(session_id)}\n")
            return None
        return session_id

    def handle_input(self, user_input: str) -> bool | None:
        """Parse user input for a command & handle it"""
        cmd = user_input.strip().lower()
        if cmd in self.commands:
            if cmd in ("!q", "!quit"):
                CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
            self.commands[cmd]()
            return True
        return False  # No command detected

    # <~~CHARTS~~>
    def spawn_help_chart(self):
        """Markdown usage chart."""
        CONSOLE.print(self.ui.help_chart_constructor())
        CONSOLE.print()

    def spawn_settings_chart(self):
        """Markdown settings chart."""
        CONSOLE.print(self.ui.settings_chart_constructor())
        CONSOLE.print()

    # <~~MAIN CONFIG~~>
    def _set_string(self, attr: str, label: str):
        """Prompts for a single string setting and saves it"""
        value = self._prompt_wrapper(HTML(f"Enter a {label}<seagreen>:</seagreen> "))
        if not value:
            return
        setattr(self.config, attr, value)
        self.config.save()
        CONSOLE.print(f"[green]{label.capitalize()} set to:[/green] {escape(value)}\n")

    def set_text_model(self):
        """Sets the model used for text-only requests"""
        self._set_string("text_model", "text model")

    def set_vision_model(self):
        """Sets the model used when an image is attached"""
        self._set_string("vision_model", "vision model")

    def set_endpoint(self):
        """Points the client at another OpenAI-compatible endpoint"""
        CONSOLE.print("[yellow]Format:[/yellow] https://host/openai/v1")
        self._set_string("endpoint", "API endpoint")

    def set_code_theme(self):
        """Allows the user to change out the rich markdown theme"""
        theme = self._prompt_wrapper(
            HTML("Enter a valid theme name<seagreen>:</seagreen> ")
        )
        if not theme:
            return

        self.config.rich_code_theme = theme.lower()
        self.config.save()
        CONSOLE.print(f"[green]Your theme has been set to: [/green]{escape(theme)}\n")

    # <~~KEY MANAGEMENT~~>
    def add_key(self):
        """Adds a key to the pool and mirrors it into the OS keychain"""
        new_key = self._prompt_wrapper(HTML("Enter an API key<seagreen>:</seagreen> "))
        if not new_key:
            return
        if not self.keys.add(new_key):
            CONSOLE.print(f"[dim]Key[/dim] {escape(mask(new_key))} [dim]is already pooled.[/dim]\n")
            return
        try:
            set_password(KEYRING_SERVICE, USER_NAME, new_key)
        except (KeyringError, ValueError, RuntimeError, OSError) as e:
            log_exception(e, "Error in add_key() - keyring mirror")
        CONSOLE.print(f"[green]Key added:[/green] {escape(mask(new_key))}\n")

    def remove_key(self):
        """Removes a key from the pool by its list number"""
        if not self.list_keys():
            return
        choice = self._prompt_wrapper(
            HTML("Enter a key number to remove<seagreen>:</seagreen> ")
        )
        if not choice:
            return
        try:
            value = int(choice)
            if value <= 0:
                raise ValueError
        except ValueError:
            self.panel.spawn_error_panel(
                "VALUE ERROR", "Please enter a positive number."
            )
            return

        pooled = self.keys.all()
        if value > len(pooled):
            CONSOLE.print(f"[red]Entry {value} does not exist.[/red]\n")
            return
        secret = pooled[value - 1]["secret"]
        self.keys.remove(secret)
        CONSOLE.print(f"[green]Key removed:[/green] {escape(mask(secret))}\n")

    def list_keys(self):
        """Shows every key with its health"""
        if not self.keys.all():
            CONSOLE.print("[dim]No API keys yet. Use [cyan]!key add[/cyan].[/dim]\n")
            return
        CONSOLE.print(self.ui.keys_table_constructor())
        return 1

    # <~~SESSION MANAGEMENT~~>
    def new_session(self):
        """Starts a fresh chat"""
        self.sessions.create_session()
        CONSOLE.print("[green]New chat started.[/green]")
        self.panel.spawn_status_panel()

    def list_sessions(self):
        """Fetches the chat list and displays it."""
        if not self.sessions.list():
            CONSOLE.print("[dim]No chats yet.[/dim]\n")
            return
        CONSOLE.print(self.ui.sessions_table_constructor())
        return 1

    def switch_session(self):
        """Switches to another chat and replays it"""
        session_id = self._session_id_prompt()
        if not session_id:
            return
        self.sessions.switch_to(session_id)
        CONSOLE.clear()
        self.panel.spawn_history()
        self.panel.spawn_status_panel()

    def delete_session(self):
        """Chat deleter. Also lists chats for user friendliness."""
        session_id = self._session_id_prompt()
        if not session_id:
            return
        was_active = session_id == self.sessions.active_id
        try:
            self.sessions.delete_session(session_id)
        except OSError as e:
            log_exception(e, f"Error in delete_session() - chat: {session_id}")
            self.panel.spawn_error_panel("DELETION ERROR", f"{e}")
            return
        CONSOLE.print(f"[green]Chat deleted:[/green] {escape(session_id)}\n")
        if was_active:
            self.panel.spawn_history()
            self.panel.spawn_status_panel()

    def clear_session(self):
        """Empties the current chat after confirmation"""
        if not self.sessions.active_id:
            return
        if not self._confirm("Clear this chat?"):
            return
        self.sessions.clear_session(self.sessions.active_id)
        CONSOLE.print("[green]The current chat has been cleared.[/green]")
        self.panel.spawn_status_panel()

    # <~~IMAGE ATTACHMENTS~~>
    def attach_image(self):
        """Stages an image file for the next message"""
        path = self._prompt_wrapper(
            HTML("Enter image path<seagreen>:</seagreen> "),
            completer=PathCompleter(expanduser=True),
            validator=self.filemanager.image_validator(),
            validate_while_typing=False,
            style=COMPLETER_STYLER,
            history=self.filepath_history,
        )
        if not path:
            return

        try:
            name = self.filemanager.attach_image(path)
        except (ValueError, OSError) as e:
            log_exception(e, "Error in attach_image()")
            self.panel.spawn_error_panel("ERROR READING IMAGE", f"{e}")
            return
        CONSOLE.print(
            f"{escape(name)} [green]attached.[/green] [dim]It will be sent with your next message.[/dim]\n"
        )

    def unattach_image(self):
        """Drops the staged image"""
        if not self.filemanager.pending_image:
            CONSOLE.print("[dim]No image attached.[/dim]\n")
            return
        name = self.filemanager.pending_name
        self.filemanager.take_image()
        CONSOLE.print(f"{escape(name)} [green]removed.[/green]\n")

