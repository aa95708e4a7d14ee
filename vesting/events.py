"""
events.py - Vesting Agreement Events

One event is emitted per successful state-changing operation; a failed
operation emits nothing. Events are just data, handlers are just functions.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union


@dataclass(frozen=True, slots=True)
class Activated:
    """The beneficiary accepted the terms; accrual starts at timestamp."""
    beneficiary: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Deposited:
    caller: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Withdrawn:
    caller: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Claimed:
    beneficiary: str
    amount: int
    timestamp: datetime


VestingEvent = Union[Activated, Deposited, Withdrawn, Claimed]

# Handler type: called once per event, after the operation has been applied
EventHandler = Callable[[VestingEvent], None]
