"""
JSON-lines persistence of the semantic index.

One ``ChunkRecord`` per line, UTF-8, no header. Writes go to a temporary file that replaces
the index atomically, so a crash mid-write leaves the previous index intact.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError as PydanticValidationError

from vaultsearch.core.exceptions import IndexPersistenceError
from vaultsearch.core.logging import logger
from vaultsearch.models.chunk import ChunkRecord


class IndexPersistence:
    """Reads and writes the JSONL index file."""

    def __init__(self, index_path: Path):
        self.index_path = Path(index_path)

    def has_index(self) -> bool:
        return self.index_path.is_file()

    async def read_records(self) -> List[ChunkRecord]:
        """
        Load every valid record.

        Malformed lines are skipped and counted in the log.

        Raises:
            IndexPersistenceError: The file exists but cannot be read
        """
        return await asyncio.to_thread(self._read_sync)

    def _read_sync(self) -> List[ChunkRecord]:
        if not self.has_index():
            return []

        records: List[ChunkRecord] = []
        skipped = 0
        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(ChunkRecord.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, PydanticValidationError, TypeError):
                        skipped += 1
        except (OSError, UnicodeDecodeError) as e:
            raise IndexPersistenceError(
                f"Failed to read index: {e}", context={"path": str(self.index_path)}, cause=e
            ) from e

        if skipped:
            logger.warning("Skipped malformed index lines", path=str(self.index_path), skipped=skipped)
        logger.debug("Index read", path=str(self.index_path), records=len(records))
        return records

    async def write_records(self, records: Sequence[ChunkRecord]) -> None:
        """
        Replace the index with ``records``.

        Raises:
            IndexPersistenceError: The index could not be written
        """
        await asyncio.to_thread(self._write_sync, list(records))

    def _write_sync(self, records: List[ChunkRecord]) -> None:
        directory = self.index_path.parent
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".index-", suffix=".jsonl.tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record.model_dump(), ensure_ascii=False))
                    f.write("\n")
            os.replace(tmp_path, self.index_path)
            tmp_path = None
        except OSError as e:
            raise IndexPersistenceError(
                f"Failed to write index: {e}", context={"path": str(self.index_path)}, cause=e
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info("Index written", path=str(self.index_path), records=len(records))

    async def clear(self) -> None:
        """Delete the index file, if any."""
        try:
            await asyncio.to_thread(self.index_path.unlink, missing_ok=True)
        except OSError as e:
            raise IndexPersistenceError(
                f"Failed to delete index: {e}", context={"path": str(self.index_path)}, cause=e
            ) from e
        logger.info("Index cleared", path=str(self.index_path))
