from .bot import StakingBot
from .scheduler import RunState, Scheduler

__all__ = ["RunState", "Scheduler", "StakingBot"]
