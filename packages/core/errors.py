"""Exception hierarchy for the scanner.

None of these escape the scan loop: gateways turn model errors into
sentinel results and the orchestrator turns tick errors into a FAILED
:class:`~packages.core.types.TickOutcome`.
"""

from __future__ import annotations


class ScanError(Exception):
    """Base class for scanner errors."""


class ModelLoadError(ScanError):
    """A model artefact could not be found or deserialised."""


class InferenceRuntimeError(ScanError):
    """The active model raised while running a request."""


class DecodeError(ScanError, ValueError):
    """A model output vector does not match the expected layout."""


class FrameProcessingError(ScanError):
    """A tick could not turn the tracking frame into a spatial frame."""
