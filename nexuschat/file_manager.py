"""Image attachment I/O. Custom validators live here as well."""

import base64
import mimetypes
import os

from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.validation import Validator

# Largest image accepted for attachment, in bytes
MAX_IMAGE_BYTES = 4_000_000


class FileManager:
    """Handles attachment-related I/O"""

    def __init__(self, sessions):
        self.sessions = sessions
        self.pending_image: str | None = None
        self.pending_name: str = ""

    def read_image(self, path: str) -> str:
        """Reads an image file and returns it as a data URI"""
        path = os.path.abspath(os.path.expanduser(path))
        mime, _ = mimetypes.guess_type(path)
        if not mime or not mime.startswith("image/"):
            raise ValueError(f"Not an image file: {os.path.basename(path)}")
        size = os.path.getsize(path)
        if size > MAX_IMAGE_BYTES:
            raise ValueError(
                f"Image is too large ({size / 1_000_000:.1f} MB, limit is "
                f"{MAX_IMAGE_BYTES / 1_000_000:.0f} MB)."
            )
        try:
            with open(path, "rb") as f:
                encoded = base64.b64encode(f.read()).decode("ascii")
        except PermissionError:
            raise PermissionError(f"Permission Denied: {path}")
        return f"data:{mime};base64,{encoded}"

    def attach_image(self, path: str) -> str:
        """Stages an image for the next outgoing message"""
        self.pending_image = self.read_image(path)
        self.pending_name = os.path.basename(path)
        return self.pending_name

    def take_image(self) -> str | None:
        """Hands over the staged image, if any, and unstages it"""
        image = self.pending_image
        self.pending_image = None
        self.pending_name = ""
        return image

    def session_completer(self) -> WordCompleter:
        """Session id completion helper, titles shown as tooltips"""
        sessions = self.sessions.list()
        return WordCompleter(
            [s["id"] for s in sessions],
            meta_dict={s["id"]: s["title"] for s in sessions},
            ignore_case=True,
            sentence=True,
        )

    def image_validator(self) -> Validator:
        """Prompt_toolkit image path validator"""

        def _validator(text: str) -> bool:
            """Path validation helper for image_validator()"""
            text = os.path.abspath(os.path.expanduser(text))
            mime, _ = mimetypes.guess_type(text)
            return os.path.isfile(text) and bool(mime and mime.startswith("image/"))

        return Validator.from_callable(
            _validator,
            error_message="Not an image file.",
            move_cursor_to_end=True,
        )
