"""
Error taxonomy for the housing analysis pipeline.

Fatal conditions are exceptions. A cohort too small to model is not an
error: the fitter returns an ``InsufficientData`` value instead.
"""

from dataclasses import dataclass


class PipelineError(Exception):
    """Base class for pipeline errors."""


class CRSMismatchError(PipelineError):
    """A layer has no CRS, or layers cannot share a metric canonical CRS."""


class EmptyReferenceSetError(PipelineError):
    """A distance or density query was run against zero reference features."""


class EmptyResultError(PipelineError):
    """A spatial filter retained zero rows."""


@dataclass(frozen=True)
class InsufficientData:
    """Returned in place of a model when a cohort has too few usable rows."""

    cohort: str
    n_obs: int
    message: str
