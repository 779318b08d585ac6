"""LogProgressAdapter — reports diarization progress via logging."""

import logging
from typing import Optional

from ports.progress import STAGE_COMPLETE, STAGE_FAILED, ProgressPort

logger = logging.getLogger(__name__)


class LogProgressAdapter(ProgressPort):
    def __init__(self):
        self._last_stage: dict[str, str] = {}

    def report(
        self,
        job_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        msg = f"[{job_id}] {stage}"
        if progress > 0:
            msg += f" {progress:.0%}"
        if detail:
            msg += f": {detail}"

        # Stage transitions at INFO, per-segment ticks at DEBUG.
        if self._last_stage.get(job_id) != stage:
            logger.info(msg)
        else:
            logger.debug(msg)

        if stage in (STAGE_COMPLETE, STAGE_FAILED):
            self._last_stage.pop(job_id, None)
        else:
            self._last_stage[job_id] = stage
