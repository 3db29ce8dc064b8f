"""Load notes from an HTTP endpoint serving JSON."""

import asyncio
from typing import Any

import requests
from loguru import logger

from card_explorer.core.errors import LoadError
from card_explorer.models.note import Note

DEFAULT_TIMEOUT: float = 30.0


class HttpLoader:
    """Loader fetching a JSON list of notes with ``requests``.

    The body is either a list of note objects or ``{"notes": [...]}``.
    Entries that do not parse are logged and skipped.
    """

    def __init__(
        self,
        url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self.sess = session or requests.Session()
        self.timeout = timeout

    def _fetch(self) -> Any:
        logger.debug("Fetching notes from {}", self.url)
        r = self.sess.get(self.url, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    @staticmethod
    def parse_notes(payload: Any) -> list[Note]:
        """Build notes from a decoded response body.

        Raises:
            LoadError: If the body has neither shape.
        """
        if isinstance(payload, dict):
            payload = payload.get("notes")
        if not isinstance(payload, list):
            msg = f"Unexpected response shape: {type(payload).__name__}"
            raise LoadError(msg)

        notes = []
        for item in payload:
            if not isinstance(item, dict):
                logger.warning("Skipping non-object entry {!r}", item)
                continue
            try:
                notes.append(Note.from_dict(item))
            except ValueError as e:
                logger.warning("Skipping entry: {}", e)
        return notes

    async def load_all_documents(self) -> list[Note]:
        payload = await asyncio.to_thread(self._fetch)
        return self.parse_notes(payload)
