"""Session reaper service."""

from playground.services.reaper.queue import Submission, SubmissionQueue
from playground.services.reaper.reaper import Reaper, ReaperCycleResult

__all__ = ["Reaper", "ReaperCycleResult", "Submission", "SubmissionQueue"]
