"""Exceptions raised by vsmem."""


class VsmemError(Exception):
    """Base class for errors that end the run with a message."""

    exit_code = 1


class UsageError(VsmemError):
    """Unknown flag or bad flag value."""


class InstallationNotFoundError(VsmemError):
    """No server installation or startup script could be found."""


class PatchError(VsmemError):
    """The startup script does not have a line we know how to patch."""


class PatchWriteError(PatchError):
    """The patched startup script could not be written."""
