"""Builds and spawns UI objects. UIConstructor and GlobalPanels live here."""

import textwrap

from rich import box
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nexuschat import __version__
from nexuschat.globals import CONFIG_FILE, CONSOLE, DATA_DIR, LOG_DIR
from nexuschat.key_manager import mask
from nexuschat.session_manager import Message, format_timestamp


class UIConstructor:
    """Constructs and returns various UI objects"""

    def __init__(self, config, sessions, keys):
        self.config = config
        self.sessions = sessions
        self.keys = keys

    def user_panel_constructor(self, message: Message) -> Panel:
        content = Text(message["content"])
        if message.get("image"):
            content = Text.assemble(("🖼  image attached\n", "dim italic"), content)
        return Panel(
            content,
            box=box.HORIZONTALS,
            padding=(0, 0),
            title=Text("🌐 You", style="bold blue"),
            title_align="left",
            border_style="blue",
            style="default",
        )

    def assistant_panel_constructor(self, content: str) -> Panel:
        return Panel(
            Markdown(content, code_theme=self.config.rich_code_theme),
            title=Text("✦ Assistant", style="bold green"),
            title_align="left",
            border_style="green",
            style="default",
            width=None,
            box=box.HORIZONTALS,
            padding=(0, 0),
        )

    def status_panel_constructor(self) -> Panel:
        session = self.sessions.active
        count = len(session["messages"]) if session else 0
        active_keys = self.keys.active_count()
        total_keys = len(self.keys.keys)

        # Colorize the key count, red once nothing is left to rotate through
        key_color: str = "dim"
        if active_keys == 0:
            key_color = "red"
        elif active_keys < total_keys:
            key_color = "yellow"

        status_text = Text.assemble(
            (" ", "cyan"),
            (f"{session['title'] if session else 'No session'}"),
            (" | "),
            (f"Messages: {count}"),
            (" | "),
            (f"Keys: {active_keys}/{total_keys}", f"{key_color}"),
        )
        return Panel(
            status_text,
            border_style="dim",
            style="dim",
            expand=False,
        )

    def intro_panel_constructor(self) -> Panel:
        intro_text = Text.assemble(
            ("Model: ", "bold sandy_brown"),
            (f"{self.config.text_model}"),
            ("\nVision Model: ", "bold sandy_brown"),
            (f"{self.config.vision_model}"),
            ("\nEndpoint: ", "bold sandy_brown"),
            (f"{self.config.endpoint}"),
        )
        return Panel(
            intro_text,
            title=Text(f"✦ Nexus Chat {__version__}", "bold medium_orchid"),
            title_align="left",
            border_style="medium_orchid",
            box=box.HORIZONTALS,
            padding=(0, 0),
        )

    def error_panel_constructor(self, error: str, exception: str) -> Panel:
        return Panel(
            Text(exception),
            title=Text(f"❌ {error}", style="bold red"),
            title_align="left",
            border_style="red",
            expand=False,
        )

    def sessions_table_constructor(self) -> Table:
        table = Table(box=box.SIMPLE_HEAD, header_style="cyan")
        table.add_column("")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Msgs", justify="right")
        table.add_column("Updated", style="dim")
        for s in self.sessions.list():
            marker = "●" if s["id"] == self.sessions.active_id else ""
            count = len(s["messages"])
            table.add_row(
                f"[green]{marker}[/green]",
                s["id"],
                Text(s["title"]),
                f"{count} msg{'s' if count != 1 else ''}",
                format_timestamp(s["updated"]),
            )
        return table

    def keys_table_constructor(self) -> Table:
        table = Table(box=box.SIMPLE_HEAD, header_style="cyan")
        table.add_column("#", justify="right")
        table.add_column("Key")
        table.add_column("Status")
        table.add_column("Failures", justify="right")
        for i, k in enumerate(self.keys.all(), start=1):
            status = "[green]active[/green]" if k["active"] else "[red]inactive[/red]"
            table.add_row(str(i), Text(mask(k["secret"])), status, str(k["failureCount"]))
        return table

    def help_chart_constructor(self) -> Markdown:
        return Markdown(
            textwrap.dedent("""
            | **Chats** | *Manage conversations* |
            | --- | ----------- |
            | `!new` | Start a new chat. |
            | `!sessions` | List all chats, most recent first. |
            | `!switch` | Switch to another chat by ID. |
            | `!delete` | Delete a chat. Deleting the current chat opens the most recent one. |
            | `!clear` | Empty the current chat and reset its title. |
            | `!cls` | Clear the terminal window. |
            | `!q` or `!quit` | Exit Nexus Chat. |

            | **Images** | *Vision requests* |
            | --- | ----------- |
            | `!image` | Attach an image to your next message. The vision model answers it. |
            | `!unattach` | Drop the staged image. |

            | **API Keys** | *Keys rotate round-robin, a key is benched after 3 failures* |
            | --- | ----------- |
            | `!key add` | Add an API key to the pool. |
            | `!key remove` | Remove an API key from the pool. |
            | `!key list` | Show every key and its health. |

            | **Configuration** | *Persistent settings* |
            | --- | ----------- |
            | `!config` | Display your current settings and default directories. |
            | `!model` | Set the text model. |
            | `!vision` | Set the vision model. |
            | `!endpoint` | Set an OpenAI-compatible API endpoint. |
            | `!theme` | Change your Markdown theme. Built-in themes can be found at https://pygments.org/styles/ |
            """)
        )

    def settings_chart_constructor(self) -> Markdown:
        return Markdown(
            textwrap.dedent(f"""
            | **Current Settings** | *Your current persistent settings* |
            | --- | ----------- |
            | **Endpoint**: | *{self.config.endpoint}* |
            | | |
            | **Text Model**: | *{self.config.text_model}* |
            | | |
            | **Vision Model**: | *{self.config.vision_model}* |
            | | |
            | **Temperature**: | *{self.config.temperature}* |
            | | |
            | **Max Tokens**: | *{self.config.max_tokens}* |
            | | |
            | **History Window**: | *{self.config.history_window} messages* |
            | | |
            | **Markdown Theme**: | *{self.config.rich_code_theme}* |
            - Your configuration file is located at: `{CONFIG_FILE}`
            - Your chats and keys are located at:    `{DATA_DIR}`
            - Your error logs are located at:        `{LOG_DIR}`
            """)
        )


class GlobalPanels:
    """Global panel spawner"""

    def __init__(self, ui: UIConstructor):
        self.ui: UIConstructor = ui

    def spawn_intro_panel(self):
        """Simple welcome panel, prints on application launch."""
        CONSOLE.print(self.ui.intro_panel_constructor())
        CONSOLE.print(Markdown("Type `!h` for a list of commands."))
        CONSOLE.print()

    def spawn_status_panel(self):
        """Prints a status panel."""
        CONSOLE.print(self.ui.status_panel_constructor())
        CONSOLE.print()

    def spawn_error_panel(self, error: str, exception: str):
        """Error panel template, used by the controller and main()"""
        CONSOLE.print(self.ui.error_panel_constructor(error, exception))
        CONSOLE.print()

    def spawn_message(self, message: Message):
        """Spawns the right panel for a stored message."""
        if message["role"] == "user":
            CONSOLE.print()
            CONSOLE.print(self.ui.user_panel_constructor(message))
            CONSOLE.print()
        else:
            CONSOLE.print(self.ui.assistant_panel_constructor(message["content"]))

    def spawn_history(self):
        """Replays the active session, for a scrollable history."""
        session = self.ui.sessions.active
        if not session or not session["messages"]:
            CONSOLE.print("[dim]What's on your mind?[/dim]\n")
            return
        for message in session["messages"]:
            self.spawn_message(message)
        CONSOLE.print()
