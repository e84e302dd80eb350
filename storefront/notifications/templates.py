"""HTML email templates for order notifications.

All four templates share one table-based shell (dark card, two-color
gradient header, common footer) so they render in clients without CSS
support. Customer-controlled values are escaped before interpolation.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from storefront.models import Order, OrderItem

TAX_DEDUCTIBILITY_NOTICE = (
    "For purchases of goods, the tax-deductible portion is limited to the amount "
    "by which your payment exceeds the fair market value of goods received."
)

DELIVERY_ESTIMATE = (
    "Your package is being shipped via USPS. "
    "You can expect delivery within 5-7 business days."
)

REFUND_TIMING = (
    "The refund has been initiated and should appear in your account within "
    "5-10 business days, depending on your bank or card issuer."
)

CANCELLATION_REFUND_NOTE = (
    "If you paid for this order, you will receive a separate email once the "
    "refund has been processed."
)

_GOLD = "#D4AF37"


@dataclass(frozen=True)
class OrganizationInfo:
    """Seller identity printed on receipts and footers."""
    name: str
    ein: str
    address: str
    support_email: str
    is_nonprofit: bool = True


def _e(value: object) -> str:
    return html.escape("" if value is None else str(value), quote=True)


def _money(amount: Decimal) -> str:
    return f"${Decimal(amount):.2f}"


def _footer(org: OrganizationInfo) -> str:
    email = _e(org.support_email)
    return f"""
          <tr>
            <td style="background-color: #0f0f0f; padding: 30px; text-align: center;">
              <p style="color: #666; margin: 0; font-size: 12px;">
                Questions? Contact us at <a href="mailto:{email}" style="color: {_GOLD};">{email}</a>
              </p>
              <p style="color: #444; margin: 10px 0 0; font-size: 11px;">{_e(org.name)} | {_e(org.address)}</p>
            </td>
          </tr>"""


def _shell(gradient: tuple[str, str], header: str, rows: Iterable[str], org: OrganizationInfo) -> str:
    start, end = gradient
    body = "".join(rows)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; padding: 0; background-color: #0a0a0a; font-family: Arial, sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #0a0a0a;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #121212; border-radius: 16px; overflow: hidden;">
          <tr>
            <td style="background: linear-gradient(135deg, {start}, {end}); padding: 40px; text-align: center;">
              {header}
            </td>
          </tr>{body}{_footer(org)}
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""


def _greeting(title: str, subtitle: str) -> str:
    return f"""
          <tr>
            <td style="padding: 40px;">
              <h2 style="color: {_GOLD}; margin: 0 0 10px; font-size: 24px;">{title}</h2>
              <p style="color: #999; margin: 0;">{subtitle}</p>
            </td>
          </tr>"""


def _label(text: str) -> str:
    return (
        '<p style="color: #666; margin: 0 0 5px; font-size: 12px; '
        f'text-transform: uppercase;">{text}</p>'
    )


def _address_block(order: Order) -> str:
    ship = order.shipping
    line2 = f"{_e(ship.line2)}<br>" if ship.line2 else ""
    return f"""
          <tr>
            <td style="padding: 0 40px 40px;">
              <table width="100%" style="background-color: #1a1a1a; border-radius: 12px;">
                <tr>
                  <td style="padding: 20px;">
                    <h3 style="color: #fff; margin: 0 0 15px; font-size: 14px;">Shipping To:</h3>
                    <p style="color: #ccc; margin: 0; font-size: 14px; line-height: 1.6;">
                      {_e(order.customer_name)}<br>
                      {_e(ship.line1)}<br>
                      {line2}
                      {_e(ship.city)}, {_e(ship.state)} {_e(ship.postal_code)}
                    </p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""


def _note(text: str, padding: str = "0 40px 30px", align: str = "left") -> str:
    return f"""
          <tr>
            <td style="padding: {padding};">
              <p style="color: #888; margin: 0; font-size: 14px; text-align: {align};">{text}</p>
            </td>
          </tr>"""


# ── Confirmation / tax receipt ────────────────────────────────────────────


def _items_table(items: Iterable[OrderItem]) -> str:
    cell = "padding: 12px; border-bottom: 1px solid #333;"
    rows = "".join(
        f"""
                  <tr>
                    <td style="{cell}">{_e(item.product_title)}</td>
                    <td style="{cell} text-align: center;">{item.quantity}</td>
                    <td style="{cell} text-align: right;">{_money(item.unit_price)}</td>
                  </tr>"""
        for item in items
    )
    return f"""
          <tr>
            <td style="padding: 30px 40px;">
              <h3 style="color: #fff; margin: 0 0 20px;">Order Items</h3>
              <table width="100%" style="color: #ccc;">
                <thead>
                  <tr style="color: #666; font-size: 12px;">
                    <th style="{cell} text-align: left;">Item</th>
                    <th style="{cell} text-align: center;">Qty</th>
                    <th style="{cell} text-align: right;">Price</th>
                  </tr>
                </thead>
                <tbody>{rows}
                </tbody>
              </table>
            </td>
          </tr>"""


def _tax_receipt(order: Order, org: OrganizationInfo) -> str:
    return f"""
          <tr>
            <td style="padding: 0 40px 40px;">
              <table width="100%" style="background-color: {_GOLD}; border-radius: 12px;">
                <tr>
                  <td style="padding: 25px;">
                    <h3 style="color: #000; margin: 0 0 15px;">Tax Receipt</h3>
                    <p style="color: #000; margin: 5px 0;"><strong>Organization:</strong> {_e(org.name)}</p>
                    <p style="color: #000; margin: 5px 0;"><strong>EIN:</strong> {_e(org.ein)}</p>
                    <p style="color: #000; margin: 5px 0;"><strong>Amount:</strong> {_money(order.total)}</p>
                    <p style="color: #000; margin: 15px 0 0; font-size: 11px; opacity: 0.8;">
                      <em>{TAX_DEDUCTIBILITY_NOTICE}</em>
                    </p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""


def render_confirmation(order: Order, items: list[OrderItem], org: OrganizationInfo) -> str:
    """Order confirmation, with a tax receipt block for non-profit sellers."""
    header = f"""<h1 style="margin: 0; color: #000; font-size: 28px; font-weight: bold;">{_e(org.name.upper())}</h1>
              <p style="margin: 10px 0 0; color: #000; font-size: 14px;">Order Confirmation{" &amp; Tax Receipt" if org.is_nonprofit else ""}</p>"""
    summary = f"""
          <tr>
            <td style="padding: 0 40px;">
              <table width="100%" style="background-color: #1a1a1a; border-radius: 12px;">
                <tr>
                  <td style="padding: 20px;">
                    {_label("Order Number")}
                    <p style="color: {_GOLD}; margin: 0; font-size: 18px; font-weight: bold;">{_e(order.order_number)}</p>
                  </td>
                  <td style="padding: 20px; text-align: right;">
                    {_label("Total")}
                    <p style="color: #fff; margin: 0; font-size: 18px;">{_money(order.total)}</p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""
    rows = [
        _greeting(f"Thank You, {_e(order.customer_name)}!", "Your order has been confirmed."),
        summary,
        _items_table(items),
    ]
    if org.is_nonprofit:
        rows.append(_tax_receipt(order, org))
    rows.append(_address_block(order))
    return _shell((_GOLD, "#8B7322"), header, rows, org)


# ── Shipping ──────────────────────────────────────────────────────────────


def render_shipping(
    order: Order,
    tracking_number: str,
    tracking_url: str | None,
    org: OrganizationInfo,
) -> str:
    """Shipping notice; the tracking button only appears with a tracking URL."""
    header = '<h1 style="margin: 0; color: #fff; font-size: 28px; font-weight: bold;">&#128230; Your Order Has Shipped!</h1>'
    tracking = f"""
          <tr>
            <td style="padding: 0 40px;">
              <table width="100%" style="background-color: #1a1a1a; border-radius: 12px;">
                <tr>
                  <td style="padding: 25px;">
                    {_label("Order Number")}
                    <p style="color: {_GOLD}; margin: 0 0 20px; font-size: 18px; font-weight: bold;">{_e(order.order_number)}</p>
                    {_label("Tracking Number")}
                    <p style="color: #fff; margin: 0; font-size: 16px; font-family: monospace;">{_e(tracking_number)}</p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""
    rows = [
        _greeting(f"Exciting News, {_e(order.customer_name)}!", "Your order is on its way to you."),
        tracking,
    ]
    if tracking_url:
        rows.append(f"""
          <tr>
            <td style="padding: 30px 40px; text-align: center;">
              <a href="{_e(tracking_url)}" style="display: inline-block; background: {_GOLD}; color: #000; padding: 15px 40px; text-decoration: none; border-radius: 30px; font-weight: bold; font-size: 14px; text-transform: uppercase;">Track Your Package</a>
            </td>
          </tr>""")
    rows.append(_note(DELIVERY_ESTIMATE, padding="30px 40px", align="center"))
    rows.append(_address_block(order))
    return _shell(("#9C27B0", "#6A1B9A"), header, rows, org)


# ── Refund ────────────────────────────────────────────────────────────────


def render_refund(
    order: Order,
    refund_amount: Decimal,
    is_full_refund: bool,
    reason: str | None,
    org: OrganizationInfo,
) -> str:
    """Refund notice; wording branches on full vs partial refund."""
    header = '<h1 style="margin: 0; color: #fff; font-size: 28px; font-weight: bold;">&#128179; Refund Processed</h1>'
    kind = "a full" if is_full_refund else "a partial"
    amount = f"""
          <tr>
            <td style="padding: 0 40px;">
              <table width="100%" style="background-color: #1a1a1a; border-radius: 12px;">
                <tr>
                  <td style="padding: 25px;">
                    {_label("Order Number")}
                    <p style="color: {_GOLD}; margin: 0 0 20px; font-size: 18px; font-weight: bold;">{_e(order.order_number)}</p>
                    {_label("Refund Amount")}
                    <p style="color: #4CAF50; margin: 0; font-size: 24px; font-weight: bold;">{_money(refund_amount)}</p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""
    rows = [
        _greeting(
            f"Hello {_e(order.customer_name)},",
            f"We've processed {kind} refund for your order.",
        ),
        amount,
    ]
    if reason:
        rows.append(_note(f"<strong>Reason:</strong> {_e(reason)}", padding="30px 40px 0"))
    rows.append(_note(REFUND_TIMING, padding="30px 40px"))
    return _shell(("#607D8B", "#455A64"), header, rows, org)


# ── Cancellation ──────────────────────────────────────────────────────────


def render_cancellation(order: Order, org: OrganizationInfo) -> str:
    """Cancellation notice showing the struck-through original total."""
    header = '<h1 style="margin: 0; color: #fff; font-size: 28px; font-weight: bold;">Order Cancelled</h1>'
    summary = f"""
          <tr>
            <td style="padding: 0 40px 40px;">
              <table width="100%" style="background-color: #1a1a1a; border-radius: 12px;">
                <tr>
                  <td style="padding: 25px;">
                    {_label("Order Number")}
                    <p style="color: {_GOLD}; margin: 0 0 20px; font-size: 18px; font-weight: bold;">{_e(order.order_number)}</p>
                    {_label("Original Total")}
                    <p style="color: #888; margin: 0; font-size: 18px; text-decoration: line-through;">{_money(order.total)}</p>
                  </td>
                </tr>
              </table>
            </td>
          </tr>"""
    rows = [
        _greeting(f"Hello {_e(order.customer_name)},", "Your order has been cancelled as requested."),
        summary,
        _note(CANCELLATION_REFUND_NOTE, padding="0 40px 40px"),
    ]
    return _shell(("#F44336", "#C62828"), header, rows, org)


def subject_for(kind: str, order: Order, org: OrganizationInfo) -> str:
    subjects = {
        "confirmation": f"Order Confirmed: {order.order_number} | {org.name}",
        "shipping": f"📦 Your Order Has Shipped! | {order.order_number}",
        "refund": f"💳 Refund Processed | {order.order_number}",
        "cancellation": f"Order Cancelled | {order.order_number}",
    }
    return subjects[kind]
