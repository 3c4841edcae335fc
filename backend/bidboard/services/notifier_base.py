"""
BidBoard Backend - Abstract Notifier Interface
===============================================

What:  The side channel the lifecycle engine uses to tell people what happened.
How:   Concrete notifiers inherit from Notifier and implement notify().
       The services never call a notifier directly; they hand events to the
       NotificationDispatcher, which runs notify() in a background task after
       the unit of work has committed.
Who:   LogNotifier (default) and WebhookNotifier in services/notifier.py.

Contract:
    - notify() may raise; the dispatcher logs and drops the failure
    - notify() is never part of a database transaction
    - implementations handle their own retry logic
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict


class Notifier(ABC):

    @abstractmethod
    async def notify(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        """
        Deliver one event to one user.

        Args:
            user_id: recipient
            event_type: a NotificationEvent value (e.g. "application_accepted")
            payload: JSON-serialisable details (application_id, project_id, ...)

        Raises:
            NotifierError: delivery failed after the implementation's retries
            CircuitBreakerOpenError: delivery is paused after repeated failures
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. Called from the lifespan shutdown."""
        return None
