from typing import Optional


class SmartUpdateError(Exception):
    """Base error for a failed smart update pass.

    ``context`` carries the structured fields (group, pod, check) that the
    caller logs alongside the message.
    """
    def __init__(self, message: str, context: Optional[dict] = None):
        super().__init__(message)
        self.context = context or {}


class PodWaitTimeout(SmartUpdateError):
    def __init__(self, pod: str, attempts: int):
        super().__init__('reach pod wait limit', {'pod': pod, 'attempts': attempts})
        self.pod = pod
        self.attempts = attempts


class AmbiguousPrimaryError(SmartUpdateError):
    pass


class CredentialsError(SmartUpdateError):
    pass
