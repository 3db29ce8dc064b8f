"""Load notes from a directory of markdown files."""

import asyncio
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from card_explorer.config import PREVIEW_MAX_LINES
from card_explorer.core.errors import LoadError
from card_explorer.models.note import Note

# Inline #tag, not inside a word, URL fragment or heading marker. Nested tags use "/".
HASHTAG_RE = re.compile(r"(?<![\w&/#])#([\w][\w/-]*)")


def split_front_matter(text: str) -> tuple[dict[str, Any] | None, str]:
    """Split ``text`` into parsed YAML front matter and the body.

    Raises:
        yaml.YAMLError: If the front matter block is not valid YAML.
    """
    if not text.startswith("---"):
        return None, text
    parts = text.split("---", 2)
    if len(parts) < 3:
        return None, text
    front_matter = yaml.safe_load(parts[1])
    body = parts[2].lstrip("\n")
    return (front_matter if isinstance(front_matter, dict) else None), body


def front_matter_tags(front_matter: dict[str, Any] | None) -> list[str]:
    """Tags from a ``tags`` (or ``tag``) entry: a list, or a comma/space separated string."""
    if not front_matter:
        return []
    raw = front_matter.get("tags", front_matter.get("tag"))
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else re.split(r"[,\s]+", str(raw))
    tags = []
    for item in items:
        tag = str(item).strip().lstrip("#")
        if tag:
            tags.append(tag)
    return tags


def inline_tags(body: str) -> list[str]:
    """``#hashtags`` in the body. Purely numeric tags such as ``#123`` are ignored."""
    return [tag for tag in HASHTAG_RE.findall(body) if not tag.isdigit()]


def make_preview(body: str, fallback: str) -> str:
    lines = [line.strip() for line in body.splitlines() if line.strip()]
    return "\n".join(lines[:PREVIEW_MAX_LINES]) or fallback


class VaultLoader:
    """Loader reading every ``*.md`` file under ``root``.

    Hidden directories (``.obsidian``, ``.trash``, ...) are skipped. Files
    which cannot be read are logged and left out of the result.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()

    def _iter_files(self) -> list[Path]:
        files = []
        for path in sorted(self.root.rglob("*.md")):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.is_file():
                files.append(path)
        return files

    def load_note(self, path: Path) -> Note:
        """Read one markdown file.

        Raises:
            OSError, UnicodeDecodeError: If the file cannot be read.
        """
        rel = path.relative_to(self.root)
        text = path.read_text(encoding="utf-8")
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)

        try:
            front_matter, body = split_front_matter(text)
        except yaml.YAMLError as e:
            logger.warning("Bad front matter in {}, ignoring it: {}", rel, e)
            front_matter, body = None, text.split("---", 2)[-1]

        folder = rel.parent.as_posix()
        return Note(
            path=rel.as_posix(),
            title=path.stem,
            modified=modified,
            preview=make_preview(body, path.stem),
            metadata=front_matter,
            tags=tuple(front_matter_tags(front_matter) + inline_tags(body)),
            folder="" if folder == "." else folder,
        )

    def _load_sync(self) -> list[Note]:
        if not self.root.is_dir():
            msg = f"Vault directory not found: {self.root}"
            raise LoadError(msg)

        notes = []
        for path in self._iter_files():
            try:
                notes.append(self.load_note(path))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping {}: {}", path, e)
        logger.debug("Read {} notes from {}", len(notes), self.root)
        return notes

    async def load_all_documents(self) -> list[Note]:
        return await asyncio.to_thread(self._load_sync)
