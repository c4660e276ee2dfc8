"""
Disposable OP-stack rollup devnets for integration tests.
Provides process supervision, readiness probing, config derivation and the
bring-up pipeline.
"""

from .context import Context
from .endpoint import Endpoint
from .environment import Environment
from .errors import DevnetError, StageError
from .listener import EventListener, SelectiveListener
from .stack import RunningStack, Stack

__all__ = [
    "Context",
    "DevnetError",
    "Endpoint",
    "Environment",
    "EventListener",
    "RunningStack",
    "SelectiveListener",
    "Stack",
    "StageError",
]
