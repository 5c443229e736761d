"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from stormy.llm.types import Message, ProviderEvent


class Provider(ABC):
    """
    A provider encapsulates access to a single LLM endpoint.

    Implementations stream ``ProviderEvent`` objects for a chat completion.
    Transport failures should be reported in-band as ``ProviderError``
    events; retries are the provider's own business and surface only as
    ``RetryNotice`` events.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> AsyncIterator[ProviderEvent]:
        """
        Start a chat completion.

        Yields provider events.  A well-behaved stream ends with
        ``StreamDone`` (or a ``ProviderError``).
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider id (e.g. ``"openai-compat"``)."""
        ...

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Model used when the caller does not pick one."""
        ...

    def resolve_model(self, model: str | None) -> str:
        return model or self.default_model
