"""Failure conditions raised inside the capture / composite / assembly pipeline."""


class PhotoBoothError(Exception):
    """Base class for every pipeline condition."""


class SourceNotReady(PhotoBoothError):
    """The frame source has no valid frame yet (zero intrinsic dimensions).

    Recoverable: the caller skips this sample and retries on the next tick.
    """


class EmptyInput(PhotoBoothError):
    """A layout or assembly step was asked to work on zero items."""


class EncoderUnsupported(PhotoBoothError):
    """The local ffmpeg build cannot mux or encode a candidate container."""

    def __init__(self, container, codec, reason=""):
        self.container = container
        self.codec = codec
        msg = f"{container}/{codec} not supported"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EncoderError(PhotoBoothError):
    """ffmpeg exited with a non-zero status."""

    def __init__(self, returncode, stderr=b""):
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.decode(errors="replace")[-3000:] if stderr else ""
        super().__init__(f"ffmpeg failed with exit code {returncode}\n{tail}".rstrip())


class VideoAssemblyFailed(PhotoBoothError):
    """A composite or encode step failed mid-sequence; partial output is discarded."""
