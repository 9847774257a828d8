"""Canned notification templates."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    category: str = "general"


def render_template(name: str, values: dict[str, Any] | None = None) -> NotificationTemplate:
    """Build a notification from a named template.

    Unknown template names produce a generic notification carrying the
    given values as data.
    """
    values = values or {}
    if name == "welcome":
        return NotificationTemplate(
            title=f"Welcome {values.get('name') or 'User'}!",
            body="Thanks for joining us. Get started by exploring our features.",
            data={"type": "welcome", "action": "onboarding"},
        )
    if name == "order_update":
        order_id = values.get("order_id")
        return NotificationTemplate(
            title="Order Update",
            body=(
                f"Your order #{order_id or 'XXX'} has been "
                f"{values.get('status') or 'updated'}."
            ),
            data={"type": "order", "orderId": order_id, "action": "view_order"},
        )
    if name == "promotion":
        return NotificationTemplate(
            title=values.get("title") or "Special Offer!",
            body=values.get("body") or "Don't miss out on this limited-time offer.",
            data={"type": "promotion", "category": "marketing", "action": "view_offer"},
            category="marketing",
        )
    if name == "reminder":
        return NotificationTemplate(
            title="Reminder",
            body=values.get("body") or "You have a pending action to complete.",
            data={"type": "reminder", "action": values.get("action") or "open_app"},
        )
    if name == "security":
        return NotificationTemplate(
            title="Security Alert",
            body=values.get("body")
            or "There was a security-related activity on your account.",
            data={"type": "security", "urgent": True, "action": "security_check"},
            category="alerts",
        )

    return NotificationTemplate(
        title=values.get("title") or "Notification",
        body=values.get("body") or "You have a new notification.",
        data={"type": "general", **values},
    )
