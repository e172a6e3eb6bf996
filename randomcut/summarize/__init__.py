"""Sample summarization over random cut forests.

This package seeds clusters from forest-sampled points and merges them down
to a small set of weighted summary points.
"""

from .summarizer import RCFSummarize
from .summary import SampleSummary, SummaryPoint

__all__ = [
    "RCFSummarize",
    "SampleSummary",
    "SummaryPoint",
]
