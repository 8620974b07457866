"""Notifications to shipment parties.

When the system advances a shipment on its own, each party company
(generator, transporter, recycler) gets an in-app notification so nobody
learns about an auto-approval only from the status column. Completion
notifies the parties regardless of who triggered it.
"""

import logging
from typing import Callable, Dict, List

from jinja2 import Template
from sqlalchemy.orm import Session

from wastetrack.core.lifecycle.events import TransitionEvent
from wastetrack.core.lifecycle.states import ShipmentStatus, TriggerKind
from wastetrack.db.models import Notification, NotificationEventType, Shipment

logger = logging.getLogger(__name__)


TEMPLATES: Dict[NotificationEventType, Dict[str, Template]] = {
    NotificationEventType.STAGE_AUTO_APPROVED: {
        "title": Template("Shipment {{ shipment_number }} auto-approved to {{ to_status }}"),
        "message": Template(
            "Shipment {{ shipment_number }} stayed at {{ from_status }} past its deadline "
            "and was moved to {{ to_status }} by the system on {{ timestamp }}."
            "{% if notes %}\n\n{{ notes }}{% endif %}"
        ),
    },
    NotificationEventType.SHIPMENT_COMPLETED: {
        "title": Template("Shipment {{ shipment_number }} completed"),
        "message": Template(
            "Shipment {{ shipment_number }} completed recycling on {{ timestamp }}."
        ),
    },
}


def notification_event_type(event: TransitionEvent):
    """Event type to notify for a transition, or None."""
    if event.to_status == ShipmentStatus.COMPLETED:
        return NotificationEventType.SHIPMENT_COMPLETED
    if event.trigger == TriggerKind.SYSTEM:
        return NotificationEventType.STAGE_AUTO_APPROVED
    return None


def render_notification(event_type: NotificationEventType, event: TransitionEvent) -> Dict[str, str]:
    context = {
        "shipment_number": event.shipment_number,
        "from_status": event.from_status.value,
        "to_status": event.to_status.value,
        "timestamp": event.timestamp.strftime("%Y-%m-%d %H:%M UTC"),
        "notes": event.notes,
    }
    templates = TEMPLATES[event_type]
    return {key: template.render(**context) for key, template in templates.items()}


class NotificationAuditSink:
    """Creates party notifications for auto-approved and completed shipments."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def emit(self, event: TransitionEvent) -> None:
        event_type = notification_event_type(event)
        if event_type is None:
            return

        db = self.session_factory()
        try:
            shipment = db.get(Shipment, event.shipment_id)
            if shipment is None:
                logger.warning("Shipment %s vanished before notification", event.shipment_id)
                return

            rendered = render_notification(event_type, event)
            recipients: List = [
                shipment.generator_company_id,
                shipment.transporter_company_id,
                shipment.recycler_company_id,
            ]
            for company_id in dict.fromkeys(recipients):
                db.add(Notification(
                    shipment_id=shipment.id,
                    recipient_company_id=company_id,
                    event_type=event_type.value,
                    title=rendered["title"],
                    message=rendered["message"],
                ))
            db.commit()
            logger.debug(
                "Queued %s notifications for shipment %s",
                event_type.value,
                event.shipment_number,
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
