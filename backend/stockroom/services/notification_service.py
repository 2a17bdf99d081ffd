# Overview: Notification collaborator for supplier messages (Email / SMS / WhatsApp).

"""
Supplier Notifications

The transport is pluggable: a Notifier instance is stored on the app under
NOTIFIER_EXTENSION_KEY. The default LogNotifier only logs the message and
reports it delivered; deployments install a real gateway notifier with
install_notifier().

A method counts as failed when the supplier has no contact for it or the
notifier raises NotificationError. Failures are logged, never raised to the
caller: the request is still recorded with status Failed.
"""

from __future__ import annotations

import logging

from flask import current_app


logger = logging.getLogger(__name__)

NOTIFIER_EXTENSION_KEY = "stockroom.notifier"


class NotificationError(Exception):
    """Raised by a notifier when a message could not be delivered."""
    pass


class Notifier:
    def send(self, *, method: str, contact: str, subject: str, message: str) -> bool:
        raise NotImplementedError


class LogNotifier(Notifier):
    def send(self, *, method: str, contact: str, subject: str, message: str) -> bool:
        logger.info("Notification via %s to %s: %s", method, contact, subject)
        logger.debug("Notification body: %s", message)
        return True


def install_notifier(app, notifier: Notifier) -> None:
    app.extensions[NOTIFIER_EXTENSION_KEY] = notifier


def get_notifier() -> Notifier:
    notifier = current_app.extensions.get(NOTIFIER_EXTENSION_KEY)
    if notifier is None:
        notifier = LogNotifier()
        install_notifier(current_app, notifier)
    return notifier


def contact_for(supplier, method: str) -> str | None:
    if method == "Email":
        return supplier.contact_email
    if method == "SMS":
        return supplier.contact_phone
    if method == "WhatsApp":
        return supplier.whatsapp_number or supplier.contact_phone
    return None


def build_reorder_message(
    *,
    business_name: str,
    branch_name: str,
    product_name: str,
    sku: str,
    current_stock: int,
    requested_quantity: int,
    custom_message: str | None = None,
) -> tuple[str, str]:
    subject = f"Restock request from {business_name}: {product_name}"
    lines = [
        f"{business_name} ({branch_name}) would like to order more of:",
        f"  {product_name} (SKU {sku})",
        f"  Current stock: {current_stock}",
        f"  Requested quantity: {requested_quantity}",
    ]
    if custom_message:
        lines.extend(["", custom_message.strip()])
    return subject, "\n".join(lines)


def dispatch(supplier, methods: list[str], *, subject: str, message: str) -> list[str]:
    """
    Send through every requested method. Returns the methods that delivered.
    """
    notifier = get_notifier()
    delivered = []
    for method in methods:
        contact = contact_for(supplier, method)
        if not contact:
            logger.warning("Supplier %s has no contact for %s", supplier.id, method)
            continue
        try:
            ok = notifier.send(method=method, contact=contact, subject=subject, message=message)
        except NotificationError as exc:
            logger.warning("Notification via %s to supplier %s failed: %s", method, supplier.id, exc)
            continue
        if ok:
            delivered.append(method)
        else:
            logger.warning("Notification via %s to supplier %s was not accepted", method, supplier.id)
    return delivered
