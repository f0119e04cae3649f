"""
Module to contain base class for Delivery channels
"""
from abc import ABC, abstractmethod
from typing import List

from pulsewatch.core.entities import Alert


class DeliveryChannel(ABC):
    """
    Base interface for all delivery channels.
    """

    name: str

    @abstractmethod
    async def deliver(
        self,
        *,
        run_date: str,
        alerts: List[Alert],
    ) -> None:
        """
        Hand over the alerts of one run.
        Must raise exceptions on failure (handled upstream).
        """
        raise NotImplementedError
