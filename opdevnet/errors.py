"""
Exception hierarchy for devnet bring-up.
"""


class DevnetError(Exception):
    """Base class for every error raised by the orchestrator."""


class ContextCancelled(DevnetError):
    """Raised when a cancellable context is cancelled before work completes."""

    def __init__(self, msg: str = "context canceled"):
        super().__init__(msg)


class DeadlineExceeded(ContextCancelled):
    """Raised when a context's deadline passes."""

    def __init__(self, msg: str = "context deadline exceeded"):
        super().__init__(msg)


class StageError(DevnetError):
    """
    A pipeline stage failed.

    Rendered as ``"<stage>: <cause>"`` and always chained from the cause.
    """

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")


class ListenerError(DevnetError):
    """Raised when a TCP listener cannot be bound."""


class ProcessSpawnError(DevnetError):
    """Raised when an external executable cannot be started."""


class ProcessError(DevnetError):
    """Raised when a supervised process exits with a nonzero code."""

    def __init__(self, name: str, argv: list[str], returncode: int):
        self.name = name
        self.argv = argv
        self.returncode = returncode
        super().__init__(f"run {' '.join(argv)}: exit status {returncode}")


class ConfigError(DevnetError):
    """Raised when deploy artifacts or configuration templates are unusable."""


class RpcError(DevnetError):
    """Raised when an RPC call returns an error."""

    def __init__(self, error: dict):
        self.code = error.get("code")
        self.message = error.get("message")
        self.data = error.get("data")
        super().__init__(f"RPC Error {self.code}: {self.message}")
