"""Failure classes raised while exchanging a message with the provider."""


class ChatError(Exception):
    """Base class. `description` is what ends up in the chat transcript."""

    description = "Something went wrong."

    def __init__(self, description: str | None = None):
        if description:
            self.description = description
        super().__init__(self.description)


class NoActiveCredential(ChatError):
    """Every API key in the pool is deactivated, or the pool is empty."""

    description = "No active API keys. Add one with !key add."


class AuthenticationError(ChatError):
    """HTTP 401, the key was rejected."""

    description = "Invalid API key."


class RateLimited(ChatError):
    """HTTP 429, the key is being throttled."""

    description = "Rate limit hit. Try another key."


class ProviderError(ChatError):
    """Any other non-2xx answer from the provider."""

    description = "API error"


class TransportFailure(ChatError):
    """No response at all (DNS, refused connection, timeout)."""

    description = "Network error. Could not reach the provider."


# Failures that count against the key that was used
CREDENTIAL_FAILURES = (AuthenticationError, RateLimited)
