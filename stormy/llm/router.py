"""
LLM Router -- the provider registry.

Constructed once at process start and handed to the orchestrator, so there
is no module-level provider singleton.  Providers are keyed by id; one of
them is the active default used when a caller does not name a provider.
"""

from __future__ import annotations

from stormy.llm.providers.base import Provider


class LLMRouter:
    """
    Registry of providers keyed by id, with one active default.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: Provider) -> None:
        """Register a provider under *name*.  Overwrites any existing entry."""
        self._providers[name] = provider
        if self._active is None:
            self._active = name

    def set_active(self, name: str) -> None:
        """
        Switch the active provider.

        Raises ``KeyError`` if *name* has not been registered.
        """
        if name not in self._providers:
            raise KeyError(
                f"Unknown provider {name!r}. "
                f"Registered: {list(self._providers)}"
            )
        self._active = name

    @property
    def active_name(self) -> str | None:
        """Return the name of the currently active provider (or ``None``)."""
        return self._active

    @property
    def active_provider(self) -> Provider:
        """
        Return the active ``Provider`` instance.

        Raises ``RuntimeError`` if no provider is active.
        """
        if self._active is None or self._active not in self._providers:
            raise RuntimeError("No active LLM provider")
        return self._providers[self._active]

    @property
    def provider_names(self) -> list[str]:
        """Return the list of registered provider names."""
        return list(self._providers)

    def get(self, name: str | None = None) -> Provider | None:
        """Return provider *name*, or the active one when *name* is ``None``."""
        if name is None:
            if self._active is None:
                return None
            return self._providers.get(self._active)
        return self._providers.get(name)
