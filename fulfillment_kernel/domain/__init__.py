"""
Pure domain layer.

Value objects and ports with no dependency on the ORM, the database or I/O
(SystemClock excepted).
"""

from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.fx import ExchangeRateProvider, StaticRateProvider
from fulfillment_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ExchangeRateProvider",
    "StaticRateProvider",
    "Guard",
    "Transition",
    "Workflow",
]
