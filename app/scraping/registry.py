"""
Scraper backend registry with capability ordering and dynamic loading.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable
from typing import Any

from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings, BackendId
from app.scraping.scrapers import HeadlessRenderScraper, ManagedApiScraper, StaticFetchScraper


class BackendRegistry:
    """
    Backend instances keyed by id, ordered static < render < managed_api.
    """

    def __init__(self, backends: Iterable[ScraperBackend] = ()) -> None:
        self._backends: dict[str, ScraperBackend] = {}
        for backend in backends:
            self.register(backend)

    @classmethod
    def build_default(cls, settings: AcquisitionSettings) -> "BackendRegistry":
        static = StaticFetchScraper(settings=settings)
        backends: list[ScraperBackend] = [static]
        if settings.render_enabled:
            backends.append(HeadlessRenderScraper(settings=settings, discovery_backend=static))
        if settings.managed_api_key:
            backends.append(ManagedApiScraper(settings=settings))
        return cls(backends)

    def register(self, backend: ScraperBackend) -> None:
        self._backends[self._key(backend.backend_id)] = backend

    def register_path(self, path: str, **kwargs: Any) -> ScraperBackend:
        """
        Instantiate and register a backend from a ``module.path:ClassName`` string.
        """

        backend = self._load_dynamic_class(path)(**kwargs)
        self.register(backend)
        return backend

    def get(self, backend_id: BackendId | str) -> ScraperBackend:
        resolved = self._backends.get(self._key(backend_id))
        if resolved is None:
            allowed = ", ".join(sorted(self._backends.keys()))
            raise ValueError(f"Unknown backend '{self._key(backend_id)}'. Registered backends: {allowed}.")
        return resolved

    def ordered(self) -> list[ScraperBackend]:
        return sorted(self._backends.values(), key=lambda backend: backend.tier)

    def cheapest(self) -> ScraperBackend:
        ordered = self.ordered()
        if not ordered:
            raise ValueError("No scraper backends registered.")
        return ordered[0]

    def next_tier(self, backend_id: BackendId | str) -> ScraperBackend | None:
        current = self.get(backend_id)
        for backend in self.ordered():
            if backend.tier > current.tier:
                return backend
        return None

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()

    @staticmethod
    def _key(backend_id: BackendId | str) -> str:
        value = backend_id.value if isinstance(backend_id, BackendId) else str(backend_id)
        return value.strip().lower()

    @staticmethod
    def _load_dynamic_class(path: str) -> type[ScraperBackend]:
        if ":" not in path:
            raise ValueError(f"Invalid backend class '{path}'. Use 'module.path:ClassName'.")

        module_path, class_name = path.split(":", 1)
        module = importlib.import_module(module_path)
        loaded = getattr(module, class_name, None)
        if loaded is None:
            raise ValueError(f"Unable to resolve backend class '{path}'.")
        if not isinstance(loaded, type) or not issubclass(loaded, ScraperBackend):
            raise ValueError(f"Class '{path}' must inherit from ScraperBackend.")
        return loaded
