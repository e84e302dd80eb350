"""Transactional email: templates, Resend delivery and order notifications."""

from storefront.notifications.protocol import EmailMessage, EmailSender, SendResult
from storefront.notifications.resend import ResendSender
from storefront.notifications.service import OrderNotifier
from storefront.notifications.templates import OrganizationInfo

__all__ = [
    "EmailMessage",
    "EmailSender",
    "OrderNotifier",
    "OrganizationInfo",
    "ResendSender",
    "SendResult",
]
