"""
DropFolder: fallback transport over a local directory.

Operators (or scripts) that cannot reach the mailbox write one reply per
``.txt`` file into the directory. Each file's full content is treated as
a message body. Files are removed once handled, whether or not a response
could be extracted, so a malformed file is never retried.
"""

import logging
from pathlib import Path
from typing import List

from .models import DropFile

logger = logging.getLogger(__name__)


class DropFolder:
    """Collects response files from the fallback directory."""

    def __init__(self, directory: Path, pattern: str = "*.txt") -> None:
        self.directory = Path(directory)
        self.pattern = pattern

    def collect(self) -> List[DropFile]:
        """
        Read every pending response file.

        A missing directory is created and yields nothing. Files that cannot
        be read are logged and left for the next cycle.

        Returns:
            Drop files in name order
        """
        if not self.directory.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created responses directory: %s", self.directory.resolve())
            return []

        paths = sorted(p for p in self.directory.glob(self.pattern) if p.is_file())
        logger.info("Found %d response file(s) in %s", len(paths), self.directory.resolve())

        files: List[DropFile] = []
        for path in paths:
            try:
                body = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.error("Error reading response file %s: %s", path, e)
                continue
            files.append(DropFile(path=path, body=body))
        return files

    def discard(self, drop_file: DropFile) -> None:
        """Delete a handled file; a file already gone is not an error."""
        try:
            drop_file.path.unlink()
            logger.debug("Deleted processed file: %s", drop_file.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Could not delete response file %s: %s", drop_file.path, e)
