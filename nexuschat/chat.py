"""The send pipeline: one user message in, one assistant message out."""

import logging
from enum import Enum

import openai
from openai import OpenAI

from nexuschat.config import Config
from nexuschat.errors import (
    CREDENTIAL_FAILURES,
    AuthenticationError,
    ChatError,
    ProviderError,
    RateLimited,
    TransportFailure,
)
from nexuschat.globals import log_exception
from nexuschat.key_manager import KeyManager
from nexuschat.session_manager import Message, SessionManager

logger = logging.getLogger(__name__)

# Stands in for the text of an image-only message
IMAGE_PLACEHOLDER = "Please analyze this image."

ERROR_TEMPLATE = (
    "Sorry, I ran into an issue: **{description}**\n\n"
    "Check your API keys with `!key list`, then try again."
)


class SendState(Enum):
    IDLE = "idle"
    SENDING = "sending"


class Chat:
    """
    Moves a message from the prompt to the provider and back into the session.

    - The user message is persisted before the network call starts
    - One call per send, made with the next key in rotation
    - Failures become an assistant message in the transcript, never an exception
    - A send arriving while the session is already sending is dropped
    """

    def __init__(self, config: Config, sessions: SessionManager, keys: KeyManager):
        self.config = config
        self.sessions = sessions
        self.keys = keys
        self.states: dict[str, SendState] = {}

    def state(self, session_id: str) -> SendState:
        return self.states.get(session_id, SendState.IDLE)

    def send(self, text: str, image: str | None = None) -> Message | None:
        """
        Sends `text` (and an optional image data URI) from the active session.\n
        Returns the assistant message that was appended, or None if the send
        was ignored.
        """
        text = (text or "").strip()
        if not text and not image:
            return None

        session_id = self.sessions.ensure_active()
        if self.state(session_id) is not SendState.IDLE:
            logger.info(f"Send ignored, session {session_id} is busy")
            return None

        store = self.sessions.store
        title = (text or "Image")[: self.config.title_length]
        store.append_message(
            session_id, "user", text or IMAGE_PLACEHOLDER, image=image, title=title
        )

        self.states[session_id] = SendState.SENDING
        try:
            session = store.get(session_id)
            history = session["messages"][-self.config.history_window :]
            request = self.build_request(history, image)
            try:
                reply = self._call_provider(request)
            except ChatError as e:
                log_exception(e, f"Error in send() - session: {session_id}")
                reply = ERROR_TEMPLATE.format(description=e.description)
            message = store.append_message(session_id, "assistant", reply)
            if message is None:
                logger.warning(f"Session {session_id} vanished mid-send, reply dropped")
            return message
        finally:
            # Back to IDLE, no entry kept for sessions deleted mid-send
            self.states.pop(session_id, None)

    def build_request(self, messages: list[Message], image: str | None = None) -> dict:
        """Shapes session history into a chat completion request body"""
        api_messages: list[dict] = [
            {"role": m["role"], "content": m["content"]} for m in messages
        ]
        if image and api_messages:
            # The image only rides along with the newest message
            last = api_messages[-1]
            last["content"] = [
                {"type": "text", "text": last["content"]},
                {"type": "image_url", "image_url": {"url": image}},
            ]
        return {
            "model": self.config.model_for(bool(image)),
            "messages": api_messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def _call_provider(self, request: dict) -> str:
        """
        Makes exactly one provider call and settles the key's health.\n
        Raises a ChatError subclass on any failure.
        """
        secret = self.keys.acquire()
        try:
            reply = self._complete(request, secret)
        except CREDENTIAL_FAILURES:
            # 401 and 429 share one counter, three throttles retire a valid key
            self.keys.report_failure(secret)
            raise
        self.keys.report_success(secret)
        return reply

    def _complete(self, request: dict, secret: str) -> str:
        """Translates SDK exceptions into ChatErrors"""
        # max_retries=0, the SDK must not retry behind the pool's back
        client = OpenAI(base_url=self.config.endpoint, api_key=secret, max_retries=0)
        try:
            completion = client.chat.completions.create(**request)
        except openai.AuthenticationError as e:
            raise AuthenticationError() from e
        except openai.RateLimitError as e:
            raise RateLimited() from e
        except openai.APIStatusError as e:
            raise ProviderError(_provider_message(e)) from e
        except openai.APIConnectionError as e:
            raise TransportFailure() from e
        except openai.APIError as e:
            # Responses the SDK could not make sense of
            raise ProviderError() from e
        try:
            return completion.choices[0].message.content or ""
        except (IndexError, AttributeError, TypeError) as e:
            # 2xx without a usable choice
            raise ProviderError("The provider sent back an empty reply.") from e


def _provider_message(e: openai.APIStatusError) -> str | None:
    """Pulls `error.message` out of a provider error body, if there is one"""
    body = e.body
    if isinstance(body, dict):
        # The SDK usually unwraps {"error": {...}} already
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return None
