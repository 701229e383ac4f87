import smtplib
from decimal import Decimal
from email.message import EmailMessage
from html import escape

from app.config import settings


def _send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)


def send_digital_delivery_email(
    to_email: str,
    display_name: str | None,
    order_number: str,
    downloads: list[tuple[str, str]],
) -> None:
    """Send download links for the digital items of a fulfilled order.

    ``downloads`` is a list of ``(product_name, url)`` pairs.
    """
    name = display_name or "there"
    text_lines = [f"- {product}: {url}" for product, url in downloads]
    text = (
        f"Hi {name},\n\n"
        f"Your order {order_number} has been confirmed. Your downloads:\n"
        + "\n".join(text_lines)
        + "\n\nThank you for your purchase."
    )
    html_items = "".join(
        f"<li>{escape(product)}: <a href=\"{escape(url)}\">Download</a></li>" for product, url in downloads
    )
    html = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your order <strong>{escape(order_number)}</strong> has been confirmed. Your downloads:</p>"
        f"<ul>{html_items}</ul>"
        "<p>Thank you for your purchase.</p>"
    )
    _send_email(
        to_email=to_email,
        subject=f"Your order {order_number} is ready",
        text_body=text,
        html_body=html,
    )


def send_vendor_payment_email(
    to_email: str,
    business_name: str,
    order_number: str,
    amount: Decimal,
    currency: str,
    product_names: list[str],
) -> None:
    products = ", ".join(product_names)
    text = (
        f"Hello {business_name},\n\n"
        f"Order {order_number} has been paid. {amount} {currency} was added to your available balance.\n"
        f"Products: {products}\n"
    )
    html = (
        f"<p>Hello {escape(business_name)},</p>"
        f"<p>Order <strong>{escape(order_number)}</strong> has been paid. "
        f"<strong>{amount} {escape(currency)}</strong> was added to your available balance.</p>"
        f"<p>Products: {escape(products)}</p>"
    )
    _send_email(
        to_email=to_email,
        subject=f"New sale: order {order_number}",
        text_body=text,
        html_body=html,
    )


def send_order_confirmation_email(
    to_email: str,
    display_name: str | None,
    order_number: str,
    amount: Decimal,
    currency: str,
) -> None:
    """Tell the customer their payment went through."""
    name = display_name or "there"
    text = (
        f"Hi {name},\n\n"
        f"We received your payment of {amount} {currency} for order {order_number}.\n"
        "Your order is confirmed and will be delivered shortly.\n"
    )
    html = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>We received your payment of <strong>{amount} {escape(currency)}</strong> "
        f"for order <strong>{escape(order_number)}</strong>.</p>"
        "<p>Your order is confirmed and will be delivered shortly.</p>"
    )
    _send_email(
        to_email=to_email,
        subject=f"Order {order_number} confirmed",
        text_body=text,
        html_body=html,
    )
