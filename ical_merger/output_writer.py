"""Destinations for the serialized merged calendar."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)


class OutputWriter(Protocol):
    """Receives one complete document per successful merge cycle."""

    def write(self, data: bytes) -> None: ...

    def read(self) -> bytes:
        """Return the latest document; FileNotFoundError if none was written."""
        ...


class FileOutputWriter:
    """Writes the merged calendar to a file, replacing it atomically.

    Data goes to a temporary file in the target directory which is then
    moved over the target with ``os.replace``, so readers see either the
    previous document or the new one, never a partial write.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def write(self, data: bytes) -> None:
        """Persist ``data`` at ``self.path``.

        Raises:
            OSError: if the directory cannot be created or the file written;
                the previous file is left untouched
        """
        dirpath = self.path.parent
        dirpath.mkdir(parents=True, exist_ok=True)

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb", dir=dirpath, prefix=f".{self.path.name}.", suffix=".tmp", delete=False
            ) as tf:
                tmp_path = Path(tf.name)
                tf.write(data)
                tf.flush()
                os.fsync(tf.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

        logger.info("Wrote merged calendar to %s (%d bytes)", self.path, len(data))

    def read(self) -> bytes:
        """Return the current document.

        Raises:
            FileNotFoundError: if nothing has been written yet
        """
        return self.path.read_bytes()
