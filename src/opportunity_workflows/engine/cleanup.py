"""Removal of generated working files for an opportunity."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

__all__ = ["WorkingFileCleaner"]

logger = logging.getLogger(__name__)


class WorkingFileCleaner:
    """Delete transient presentation exports and their sidecar files.

    A file belongs to an opportunity when its name starts with
    ``<prefix><opportunity_id>_``, e.g. ``presentation_opp-1_slides.pptx`` or
    ``presentation_opp-1_slides.json``.

    Attributes:
        output_dir: Directory holding the generated files.
        prefix: Filename prefix of generated files.
    """

    def __init__(self, output_dir: Path | str, prefix: str = "presentation_") -> None:
        self.output_dir = Path(output_dir)
        self.prefix = prefix

    def pattern_for(self, opportunity_id: str) -> str:
        return f"{self.prefix}{opportunity_id}_"

    async def clean(self, opportunity_id: str) -> list[Path]:
        """Delete every working file of an opportunity.

        Args:
            opportunity_id: The opportunity whose files should go.

        Returns:
            The paths that were removed. Empty when the directory does not exist.
        """
        return await asyncio.to_thread(self._clean, opportunity_id)

    def _clean(self, opportunity_id: str) -> list[Path]:
        if not self.output_dir.is_dir():
            logger.debug("Working output directory %s does not exist", self.output_dir)
            return []

        pattern = self.pattern_for(opportunity_id)
        removed: list[Path] = []
        for path in sorted(self.output_dir.iterdir()):
            if not path.is_file() or not path.name.startswith(pattern):
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
            logger.debug("Removed working file %s", path)

        if removed:
            logger.info("Removed %d working files for opportunity %s", len(removed), opportunity_id)
        return removed
