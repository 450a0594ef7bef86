"""
Exception hierarchy for ContainerPulse.

Engine errors surface as docker.errors.*; these cover the failures the
updater itself detects. Step boundaries convert them into result objects.
"""

from typing import Optional


class ContainerPulseError(Exception):
    """Base class for all ContainerPulse errors"""


class ImagePullError(ContainerPulseError):
    """
    Raised when an image cannot be pulled.

    reason is one of: not_found, auth_denied, timeout, error
    """

    NOT_FOUND = 'not_found'
    AUTH_DENIED = 'auth_denied'
    TIMEOUT = 'timeout'
    ERROR = 'error'

    def __init__(self, reference: str, reason: str, message: Optional[str] = None):
        self.reference = reference
        self.reason = reason
        super().__init__(message or f"Failed to pull {reference}: {reason}")


class CreationParamsError(ContainerPulseError):
    """Raised when synthesized creation parameters fail validation"""


class ComposeCommandError(ContainerPulseError):
    """Raised when a docker compose invocation exits non-zero"""

    def __init__(self, args, returncode: int, stderr: str = ''):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command '{' '.join(self.args_list)}' failed with exit code {returncode}: {stderr.strip()}"
        )


class ReleaseError(ContainerPulseError):
    """Raised for release controller failures (backup missing, invalid transition)"""
