from __future__ import annotations


class SightSingingError(Exception):
    """Base class for errors raised by the practice engine."""


class MicrophonePermissionDenied(SightSingingError):
    """The user (or the OS) refused access to the microphone."""


class CaptureUnavailable(SightSingingError):
    """No usable audio input exists on this host."""


class InvalidReferenceMelody(SightSingingError, ValueError):
    """A reference melody was empty or could not be parsed."""


class InvalidNoteName(SightSingingError, ValueError):
    """A note name such as ``"H4"`` or ``"C"`` could not be parsed."""
