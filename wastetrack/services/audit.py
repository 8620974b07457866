"""Audit sinks for shipment transition events.

Sinks run after the transition has committed. The lifecycle service guards
every ``emit`` call, so a failing sink is logged and never undoes or fails
the transition.
"""

import logging
from typing import Callable, Iterable, List, Optional

import httpx
from sqlalchemy.orm import Session

from wastetrack.core.config import Settings
from wastetrack.core.lifecycle.events import AuditSink, TransitionEvent
from wastetrack.core.lifecycle.states import TriggerKind
from wastetrack.db.models import AuditLog, AuditSeverity
from wastetrack.services.notifications import NotificationAuditSink

logger = logging.getLogger(__name__)

TRANSITION_ACTION = "shipment.transition"


class LoggingAuditSink:
    """Writes one structured log line per transition."""

    def __init__(self, name: str = "wastetrack.audit"):
        self.logger = logging.getLogger(name)

    def emit(self, event: TransitionEvent) -> None:
        self.logger.info(
            "transition shipment=%s number=%s %s->%s stage=%s actor=%s trigger=%s at=%s",
            event.shipment_id,
            event.shipment_number,
            event.from_status.value,
            event.to_status.value,
            event.stage.value,
            event.actor_id,
            event.trigger.value,
            event.timestamp.isoformat(),
        )


class DatabaseAuditSink:
    """Persists transitions as immutable ``audit_logs`` rows in their own session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def emit(self, event: TransitionEvent) -> None:
        db = self.session_factory()
        try:
            entry = AuditLog.create_entry(
                action=TRANSITION_ACTION,
                resource_type="shipment",
                user_id=event.actor_id,
                trigger=event.trigger.value,
                resource_id=event.shipment_id,
                old_values={"status": event.from_status.value},
                new_values={"status": event.to_status.value, "stage": event.stage.value},
                details=event.to_dict(),
                severity=(
                    AuditSeverity.WARNING
                    if event.trigger == TriggerKind.SYSTEM
                    else AuditSeverity.INFO
                ),
            )
            db.add(entry)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class WebhookAuditSink:
    """POSTs each event as JSON to an external endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30,
        client_factory: Callable[..., httpx.Client] = httpx.Client,
    ):
        self.url = url
        self.timeout = timeout
        self._client_factory = client_factory

    def emit(self, event: TransitionEvent) -> None:
        payload = {"event": TRANSITION_ACTION, "data": event.to_dict()}
        with self._client_factory(timeout=self.timeout) as client:
            response = client.post(self.url, json=payload)
            response.raise_for_status()


class CompositeAuditSink:
    """Fans an event out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: Iterable[AuditSink]):
        self.sinks: List[AuditSink] = list(sinks)

    def emit(self, event: TransitionEvent) -> None:
        errors = []
        for sink in self.sinks:
            try:
                sink.emit(event)
            except Exception as e:
                logger.error("Audit sink %s failed: %s", type(sink).__name__, e)
                errors.append(e)
        if errors:
            raise RuntimeError(f"{len(errors)} of {len(self.sinks)} audit sinks failed")


def build_audit_sink(
    settings: Settings,
    session_factory: Optional[Callable[[], Session]] = None,
) -> CompositeAuditSink:
    """Compose the sinks enabled by configuration."""
    sinks: List[AuditSink] = [LoggingAuditSink()]
    if session_factory is not None:
        sinks.append(DatabaseAuditSink(session_factory))
        sinks.append(NotificationAuditSink(session_factory))
    if settings.audit_webhook_url:
        sinks.append(WebhookAuditSink(settings.audit_webhook_url, timeout=settings.webhook_timeout))
    return CompositeAuditSink(sinks)
