"""In-process domain event dispatch."""
from .bus import DomainEventBus, EventHandler

__all__ = ["DomainEventBus", "EventHandler"]
