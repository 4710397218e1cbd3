"""Handles all user-facing configuration actions."""

import json
import os

from nexuschat.globals import CONFIG_FILE


class Config:
    """User-facing configuration variables"""

    def __init__(self):
        # Completion provider, any OpenAI-compatible endpoint works
        self.endpoint: str = "https://api.groq.com/openai/v1"
        self.text_model: str = "llama-3.3-70b-versatile"
        self.vision_model: str = "llama-3.2-90b-vision-preview"
        # Request shaping
        self.temperature: float = 0.7
        self.max_tokens: int = 2048
        self.history_window: int = 20
        # Session titles are cut down to this many characters
        self.title_length: int = 40
        self.rich_code_theme: str = "monokai"

    def save(self):
        """Saves any config changes to the config file."""
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(self.__dict__, f, indent=2)

    def load(self):
        """Loads the config file."""
        if not os.path.exists(CONFIG_FILE):
            self.save()
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
        for key, val in data.items():
            setattr(self, key, val)

    def model_for(self, has_image: bool) -> str:
        """Returns the model variant that fits the outgoing request"""
        return self.vision_model if has_image else self.text_model
