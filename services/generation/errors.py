"""Exception types raised by the generation pipeline."""


class GenerationError(Exception):
    """Base class for failures that abort a generation run."""


class SynthesisError(GenerationError):
    """A required view image could not be generated."""


class ImageDecodeError(GenerationError):
    """A synthesized image could not be decoded for normalization."""


class SubmissionError(GenerationError):
    """The reconstruction job queue rejected the submission."""


class ReconstructionError(GenerationError):
    """The reconstruction job failed or completed without a usable mesh."""


class ReconstructionTimeout(ReconstructionError):
    """The reconstruction job did not reach a terminal status in time."""


class CancellationWarning(UserWarning):
    """Best-effort cancellation of a remote job failed. Logged, never raised."""
