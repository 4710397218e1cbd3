#!/usr/bin/env python3

# <~~~~~~~~~~~>
#  NEXUS CHAT
# <~~~~~~~~~~~>

import sys

from rich.live import Live
from rich.markup import escape

from nexuschat.chat import Chat
from nexuschat.cli_controller import CLIController
from nexuschat.config import Config
from nexuschat.file_manager import FileManager
from nexuschat.globals import (
    CONSOLE,
    DATA_DIR,
    init_logger,
    log_exception,
    retrieve_key,
    root_prompt,
    setup_keyring_backend,
    spinner_constructor,
)
from nexuschat.key_manager import KeyManager
from nexuschat.session_manager import SessionManager, SessionStore
from nexuschat.storage import Storage
from nexuschat.ui import GlobalPanels, UIConstructor


class App:
    """Wires the core together and runs the prompt loop"""

    def __init__(self, config: Config, data_dir: str | None = None):
        self.config = config
        storage = Storage(data_dir or DATA_DIR)
        self.keys = KeyManager(storage)
        self.sessions = SessionManager(SessionStore(storage))
        self.chat = Chat(config, self.sessions, self.keys)
        self.filemanager = FileManager(self.sessions)
        self.ui = UIConstructor(config, self.sessions, self.keys)
        self.panel = GlobalPanels(self.ui)
        self.controller = CLIController(
            config, self.sessions, self.keys, self.filemanager, self.panel, self.ui
        )

        # First launch, a key from the env or the keychain seeds the pool
        self.keys.import_key(retrieve_key())
        self.sessions.load()

    def turn(self, user_input: str):
        """Handles one line of input, either a command or a message"""
        if self.controller.handle_input(user_input):
            return
        image = self.filemanager.take_image()
        if not user_input.strip() and not image:
            return

        session = self.sessions.active
        start = len(session["messages"]) if session else 0
        with CONSOLE.status(
            "[bold medium_orchid]Thinking...[/bold medium_orchid]", spinner="moon"
        ):
            reply = self.chat.send(user_input, image)
        if reply is None:
            return

        # Paint everything this turn appended, user message included
        session = self.sessions.active
        for message in session["messages"][start:]:
            self.panel.spawn_message(message)
        CONSOLE.print()
        self.panel.spawn_status_panel()

    def run(self):
        """Helper function for running the application"""
        self.panel.spawn_intro_panel()
        self.panel.spawn_history()
        self.panel.spawn_status_panel()
        while True:
            try:
                user_input = root_prompt()
            except (KeyboardInterrupt, EOFError):
                CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
                break
            try:
                self.turn(user_input)
            except SystemExit:
                raise
            except Exception as e:
                log_exception(e, "Error in turn()")
                self.panel.spawn_error_panel("ERROR", f"{e}")


# <~~MAIN FLOW~~>
def main():
    try:
        # Start a spinner, mostly for cold starts
        with Live(
            spinner_constructor("Launching Nexus Chat..."),
            refresh_per_second=8,
            console=CONSOLE,
        ):
            init_logger()
            setup_keyring_backend()
            config = Config()
            config.load()
            app = App(config)
        CONSOLE.clear()
        app.run()
    except (KeyboardInterrupt, EOFError):
        CONSOLE.print("[yellow]✨ Farewell![/yellow]\n")
    except Exception as e:
        log_exception(e, "Critical startup error")
        CONSOLE.print(f"[bold red]❌ CRITICAL ERROR[/bold red] {escape(str(e))}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
