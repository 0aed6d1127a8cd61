"""
Email templates for Ednova.

Inline CSS only, for email client compatibility. Light theme with an indigo
accent. Each template function takes keyword arguments and returns
(subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

APP_NAME = "Ednova"

BG_PAGE = "#F4F5FB"
BG_CARD = "#FFFFFF"
ACCENT = "#4F46E5"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4B5563"
BORDER = "#E5E7EB"

_SIGNATURE = f"-- The {APP_NAME} Team"


def _layout(title: str, content: str) -> str:
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: Arial, Helvetica, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%">
        <tr>
            <td align="center" style="padding: 32px 16px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="560" style="max-width: 560px; width: 100%;">
                    <tr>
                        <td style="padding-bottom: 24px; font-size: 22px; font-weight: 700; color: {ACCENT};">{APP_NAME}</td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 10px; padding: 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td style="padding-top: 24px; color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5;">
                            You received this email because of activity on your {APP_NAME} account.
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _heading(text: str) -> str:
    return f'<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; margin: 0 0 16px 0;">{escape(text)}</h1>'


def _paragraph(text: str) -> str:
    return f'<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 16px 0;">{text}</p>'


def _action(url: str, label: str) -> str:
    safe_url = escape(url, quote=True)
    return f"""\
<p style="margin: 24px 0;">
    <a href="{safe_url}" target="_blank" style="display: inline-block; padding: 12px 28px; background-color: {ACCENT}; color: #FFFFFF; font-size: 15px; font-weight: 600; text-decoration: none; border-radius: 6px;">{escape(label)}</a>
</p>
<p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
    Button not working? Paste this link into your browser:<br>
    <a href="{safe_url}" style="color: {ACCENT}; word-break: break-all;">{escape(url)}</a>
</p>"""


def welcome(name: str | None, verify_url: str, expires_minutes: int = 15) -> tuple[str, str, str]:
    """Sent right after registration."""
    display = name or "there"
    subject = f"Welcome to {APP_NAME}"
    content = (
        _heading(f"Welcome to {APP_NAME}!")
        + _paragraph(f"Hi {escape(display)},")
        + _paragraph("Your account is ready. Confirm your email address to start learning.")
        + _action(verify_url, "Verify email")
        + _paragraph(f"The link expires in {expires_minutes} minutes.")
    )
    text_body = (
        f"Hi {display},\n\n"
        f"Your {APP_NAME} account is ready. Confirm your email address here:\n\n{verify_url}\n\n"
        f"The link expires in {expires_minutes} minutes.\n\n{_SIGNATURE}"
    )
    return subject, _layout(subject, content), text_body


def verify_email(verify_url: str, expires_minutes: int = 15) -> tuple[str, str, str]:
    subject = "Verify your email address"
    content = (
        _heading("Verify your email")
        + _paragraph("Click the button below to verify your email address.")
        + _action(verify_url, "Verify email")
        + _paragraph(f"The link expires in {expires_minutes} minutes. If you didn't ask for it, ignore this email.")
    )
    text_body = (
        f"Verify your email address:\n\n{verify_url}\n\n"
        f"The link expires in {expires_minutes} minutes. If you didn't ask for it, ignore this email.\n\n"
        f"{_SIGNATURE}"
    )
    return subject, _layout(subject, content), text_body


def password_reset(reset_url: str, expires_minutes: int = 15) -> tuple[str, str, str]:
    subject = "Reset your password"
    content = (
        _heading("Reset your password")
        + _paragraph(f"We received a request to reset your {APP_NAME} password.")
        + _action(reset_url, "Choose a new password")
        + _paragraph(f"The link expires in {expires_minutes} minutes. Your password stays unchanged otherwise.")
    )
    text_body = (
        f"We received a request to reset your {APP_NAME} password.\n\n"
        f"Choose a new password here:\n\n{reset_url}\n\n"
        f"The link expires in {expires_minutes} minutes. If you didn't request this, ignore this email.\n\n"
        f"{_SIGNATURE}"
    )
    return subject, _layout(subject, content), text_body


def password_changed(name: str | None) -> tuple[str, str, str]:
    display = name or "there"
    subject = "Your password has been changed"
    content = (
        _heading("Password changed")
        + _paragraph(f"Hi {escape(display)},")
        + _paragraph(f"The password for your {APP_NAME} account was just changed.")
        + _paragraph("If this wasn't you, reset your password and contact your administrator.")
    )
    text_body = (
        f"Hi {display},\n\n"
        f"The password for your {APP_NAME} account was just changed.\n\n"
        f"If this wasn't you, reset your password and contact your administrator.\n\n{_SIGNATURE}"
    )
    return subject, _layout(subject, content), text_body


def course_purchase(
    name: str | None,
    course_title: str,
    expires_on: str,
    course_url: str,
) -> tuple[str, str, str]:
    """Purchase confirmation after a verified checkout."""
    display = name or "there"
    subject = f"You're enrolled: {course_title}"
    content = (
        _heading("Purchase confirmed")
        + _paragraph(f"Hi {escape(display)},")
        + _paragraph(
            f"You now have access to <strong>{escape(course_title)}</strong> until "
            f"<strong>{escape(expires_on)}</strong>."
        )
        + _action(course_url, "Start learning")
    )
    text_body = (
        f"Hi {display},\n\n"
        f"You now have access to {course_title} until {expires_on}.\n\n"
        f"Start learning: {course_url}\n\n{_SIGNATURE}"
    )
    return subject, _layout(subject, content), text_body
