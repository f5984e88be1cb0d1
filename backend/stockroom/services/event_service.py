# Overview: Change notification for live views; publishes derived-state-changed events.

"""
Change Events

WHY: Dashboards and lists refresh when data they show changes. The core
publishes an event after each committed write; transports (websocket,
SSE, polling cache invalidation) subscribe here and stay decoupled.

Events are published AFTER commit, so a subscriber never observes a
change that is later rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from blinker import Namespace
from flask import current_app, has_app_context

from ..permissions import Entity


_signals = Namespace()

# sender is the Entity value ("product", "stock_movement", ...)
entity_changed = _signals.signal("entity-changed")


@dataclass(frozen=True)
class ChangeEvent:
    entity: str
    operation: str  # insert | update | delete
    company_id: int | None
    ids: tuple[int, ...] = ()
    data: dict = field(default_factory=dict)


def publish(entity, operation: str, *, company_id: int | None, ids=(), **data) -> ChangeEvent:
    """
    Notify subscribers of a committed change.

    A failing subscriber is logged and does not affect the caller: the
    write it reports on has already been committed.
    """
    event = ChangeEvent(
        entity=Entity(entity).value,
        operation=operation,
        company_id=company_id,
        ids=tuple(ids),
        data=data,
    )
    for receiver in entity_changed.receivers_for(event.entity):
        try:
            receiver(event.entity, event=event)
        except Exception:
            if not has_app_context():
                raise
            current_app.logger.exception("Change subscriber failed for %s %s", event.entity, event.operation)
    return event


def subscribe(entity, callback, *, company_id: int | None = None):
    """
    Register callback(event) for changes to one entity kind.

    With company_id set, only that tenant's events are delivered.
    Returns a function that removes the subscription.
    """
    sender = Entity(entity).value

    def _receiver(sender, event: ChangeEvent):
        if company_id is not None and event.company_id != company_id:
            return
        callback(event)

    entity_changed.connect(_receiver, sender=sender, weak=False)

    def unsubscribe():
        entity_changed.disconnect(_receiver, sender=sender)

    return unsubscribe
