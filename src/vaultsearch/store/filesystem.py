"""
Document store backed by a directory of markdown notes.

Used by the CLI. Metadata (headings, links, tags, front-matter) is parsed on demand and cached
per document until its mtime changes.
"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Set

from vaultsearch.core.exceptions import NotFoundError, ValidationError
from vaultsearch.core.logging import logger
from vaultsearch.models.document import DocumentInfo, Heading
from vaultsearch.store.markdown import (
    extract_link_targets,
    extract_tags,
    parse_frontmatter,
    parse_headings,
)


@dataclass
class _NoteMetadata:
    mtime: float
    headings: List[Heading]
    link_targets: List[str]
    tags: List[str]
    frontmatter: Dict[str, Any] = field(default_factory=dict)


class FilesystemDocumentStore:
    """
    Markdown vault on disk.

    Paths are POSIX-style and relative to ``root``. Hidden directories (``.git``,
    ``.obsidian``, the index directory) are skipped.
    """

    def __init__(self, root: Path, extensions: tuple = (".md",)):
        self.root = Path(root).resolve()
        self.extensions = extensions
        self._metadata: Dict[str, _NoteMetadata] = {}
        self._backlinks: Optional[Dict[str, Set[str]]] = None
        self._known_mtimes: Dict[str, float] = {}

    def _resolve(self, path: str) -> Path:
        pure = PurePosixPath(path)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValidationError(f"Unsafe document path: {path}", context={"path": path})
        return self.root.joinpath(*pure.parts)

    def list_documents(self) -> List[DocumentInfo]:
        documents = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if not filename.endswith(self.extensions):
                    continue
                full_path = Path(dirpath) / filename
                try:
                    stat = full_path.stat()
                except OSError as e:
                    logger.warning("Skipping unreadable document", path=str(full_path), error=str(e))
                    continue
                rel_path = full_path.relative_to(self.root).as_posix()
                documents.append(
                    DocumentInfo(
                        path=rel_path,
                        mtime=stat.st_mtime * 1000,
                        # st_ctime is the inode change time on Linux; good enough as a creation time
                        ctime=stat.st_ctime * 1000,
                    )
                )

        current = {doc.path: doc.mtime for doc in documents}
        if current != self._known_mtimes:
            self._known_mtimes = current
            self._backlinks = None
        return documents

    def _read_sync(self, path: str) -> str:
        full_path = self._resolve(path)
        if not full_path.is_file():
            raise NotFoundError(f"Document not found: {path}", context={"path": path})
        return full_path.read_text(encoding="utf-8", errors="replace")

    async def read_document(self, path: str) -> str:
        return await asyncio.to_thread(self._read_sync, path)

    def _get_metadata(self, path: str) -> Optional[_NoteMetadata]:
        try:
            full_path = self._resolve(path)
            mtime = full_path.stat().st_mtime * 1000
        except (OSError, ValidationError):
            return None

        cached = self._metadata.get(path)
        if cached is not None and cached.mtime >= mtime:
            return cached

        try:
            content = self._read_sync(path)
        except (OSError, NotFoundError) as e:
            logger.warning("Could not parse document metadata", path=path, error=str(e))
            return None

        metadata = _NoteMetadata(
            mtime=mtime,
            headings=parse_headings(content),
            link_targets=extract_link_targets(content),
            tags=extract_tags(content),
            frontmatter=parse_frontmatter(content),
        )
        self._metadata[path] = metadata
        return metadata

    def _resolve_link(self, source: str, target: str, known: Set[str]) -> Optional[str]:
        """Resolve a wikilink or markdown link target to a known document path."""
        candidate = target if target.endswith(self.extensions) else f"{target}.md"
        relative = (PurePosixPath(source).parent / candidate).as_posix()
        for option in (candidate, relative):
            if option in known:
                return option
        # Obsidian-style shortest path: match on file name anywhere in the vault
        name = PurePosixPath(candidate).name
        matches = sorted(p for p in known if PurePosixPath(p).name == name)
        return matches[0] if matches else None

    def get_headings(self, path: str) -> List[Heading]:
        metadata = self._get_metadata(path)
        return list(metadata.headings) if metadata else []

    def get_outgoing_links(self, path: str) -> List[str]:
        metadata = self._get_metadata(path)
        if metadata is None:
            return []
        known = set(self._known_mtimes) or {doc.path for doc in self.list_documents()}
        links = []
        for target in metadata.link_targets:
            resolved = self._resolve_link(path, target, known)
            if resolved and resolved != path and resolved not in links:
                links.append(resolved)
        return links

    def get_backlinks(self, path: str) -> List[str]:
        if self._backlinks is None:
            backlinks: Dict[str, Set[str]] = {}
            for doc in self.list_documents():
                for target in self.get_outgoing_links(doc.path):
                    backlinks.setdefault(target, set()).add(doc.path)
            self._backlinks = backlinks
        return sorted(self._backlinks.get(path, set()))

    def get_tags(self, path: str) -> List[str]:
        metadata = self._get_metadata(path)
        return list(metadata.tags) if metadata else []

    def get_frontmatter(self, path: str) -> Dict[str, Any]:
        metadata = self._get_metadata(path)
        return dict(metadata.frontmatter) if metadata else {}
