"""
File sinks for run output: the merged profile document and the error log.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from core.interfaces import Sink
from core.models import PipelineError
from core.schema import ResultItem, build_parsed_output


logger = logging.getLogger(__name__)


class JsonOutputSink(Sink):
    """Collect result items and write one ParsedOutput document on exit."""

    name = "JsonOutputSink"

    def __init__(self, path: Union[str, Path], source: str = "presta-finder", raw=None):
        self.path = Path(path).expanduser()
        self.source = source
        self.raw = raw
        self._items: List[ResultItem] = []
        self.written: Optional[Path] = None

    async def handle(self, item: ResultItem) -> None:
        self._items.append(item)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            logger.warning(f"Not writing {self.path}: run aborted ({exc_type.__name__})")
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = build_parsed_output(self.source, self._items, self.raw)
        self.path.write_text(document.dump() + "\n", encoding="utf-8")
        self.written = self.path
        logger.info(f"Wrote {document.meta.count} records to {self.path}")


class ErrorLogSink(Sink):
    """Append one JSON line per PipelineError."""

    name = "ErrorLogSink"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self.count = 0

    async def __aenter__(self) -> "ErrorLogSink":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return self

    async def handle(self, item: PipelineError) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(item.model_dump_json() + "\n")
        self.count += 1

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.count:
            logger.info(f"Logged {self.count} pipeline errors to {self.path}")
