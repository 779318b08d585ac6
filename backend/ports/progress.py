"""ProgressPort — abstract interface for reporting diarization progress."""

from abc import ABC, abstractmethod
from typing import Optional

# Stages in the order a run reports them.
STAGE_DETECTING = "detecting"
STAGE_SEGMENTING = "segmenting"
STAGE_ASSIGNING = "assigning"
STAGE_COMPLETE = "complete"

STAGES = (STAGE_DETECTING, STAGE_SEGMENTING, STAGE_ASSIGNING, STAGE_COMPLETE)

# Reported instead of STAGE_COMPLETE when a run raises.
STAGE_FAILED = "failed"


class ProgressPort(ABC):
    @abstractmethod
    def report(
        self,
        job_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        """Report progress of one diarization run.

        `progress` is the fraction of the current stage done; only the
        assigning stage reports per-segment ticks.
        """
