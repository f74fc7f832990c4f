"""Shared base for the storefront services."""

from __future__ import annotations

from storefront.logger import StructuredLogger


class BaseService:
    """Holds the injected ``StructuredLogger`` as ``self._logger``.

    Subclasses take their repositories, state and clients as further
    constructor arguments and call ``super().__init__(logger)`` first.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
