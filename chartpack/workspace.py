"""
Per-request working files.

A RequestWorkspace owns exactly one input and one output file for one
request. `request_workspace()` guarantees both are released on every exit
path; a file that cannot be removed is logged as a CleanupWarning and does
not change the outcome of the request.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List

from .errors import CleanupWarning
from .runner import output_path_for
from .uploads import unique_name

logger = logging.getLogger(__name__)


class FileState(str, Enum):
    CREATED = "created"
    IN_USE = "in-use"
    DELETED = "deleted"


@dataclass
class WorkingFile:
    path: Path
    state: FileState = FileState.CREATED

    def release(self) -> List[CleanupWarning]:
        """Remove the file (and any partial write). Missing files count as removed."""
        warnings: List[CleanupWarning] = []
        for target in (self.path, _partial(self.path)):
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                warnings.append(CleanupWarning(target, str(e)))
        if not warnings:
            self.state = FileState.DELETED
        return warnings


def _partial(path: Path) -> Path:
    return path.with_name(path.name + ".part")


@dataclass
class RequestWorkspace:
    input: WorkingFile
    output: WorkingFile
    cleanup_warnings: List[CleanupWarning] = field(default_factory=list)

    @classmethod
    def allocate(cls, work_dir: Path, filename: str) -> "RequestWorkspace":
        in_path = Path(work_dir) / unique_name(filename)
        return cls(
            input=WorkingFile(in_path),
            output=WorkingFile(Path(output_path_for(str(in_path)))),
        )

    def write_input(self, payload: bytes) -> Path:
        """Write the upload once, atomically: a `.part` sibling renamed into place."""
        if self.input.state is not FileState.CREATED:
            raise RuntimeError(f"Input file already written: {self.input.path}")
        tmp = _partial(self.input.path)
        with open(tmp, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.input.path)
        self.input.state = FileState.IN_USE
        logger.info("Saved upload to: %s (%d bytes)", self.input.path, len(payload))
        return self.input.path

    def mark_output_written(self) -> Path:
        """Called once the analyzer has produced the output file."""
        self.output.state = FileState.IN_USE
        return self.output.path

    def release(self) -> List[CleanupWarning]:
        warnings: List[CleanupWarning] = []
        for wf in (self.input, self.output):
            warnings.extend(wf.release())
        for w in warnings:
            logger.warning("Cleanup warning: %s", w)
        if not warnings:
            logger.info("Cleaned up temporary files")
        self.cleanup_warnings = warnings
        return warnings


@contextmanager
def request_workspace(work_dir: Path, filename: str) -> Iterator[RequestWorkspace]:
    """Allocate working paths for one request; release them however the block exits."""
    Path(work_dir).mkdir(parents=True, exist_ok=True)
    ws = RequestWorkspace.allocate(work_dir, filename)
    try:
        yield ws
    finally:
        ws.release()
