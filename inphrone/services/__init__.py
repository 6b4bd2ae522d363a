"""Services package."""

from .async_runner import run_coroutine_sync, set_main_loop
from .cache import MultiLevelCache
from .container import Services, build_services
from .realtime import ChangeEvent, ChangeFeed, FeedDisconnected
from .your_turn import ClaimResult, SubmitResult, VoteResult, YourTurnService

__all__ = [
    "run_coroutine_sync",
    "set_main_loop",
    "MultiLevelCache",
    "Services",
    "build_services",
    "ChangeEvent",
    "ChangeFeed",
    "FeedDisconnected",
    "ClaimResult",
    "SubmitResult",
    "VoteResult",
    "YourTurnService",
]
