from __future__ import annotations

from flask import current_app
from flask_mail import Message

from bookshare.extensions import mail


class MailService:
    @staticmethod
    def send_email(to_email: str, subject: str, body: str) -> tuple[bool, str | None]:
        """
        return: (success, error_text)
        """
        try:
            msg = Message(subject=subject, recipients=[to_email], body=body)
            mail.send(msg)
            return True, None
        except Exception as e:
            current_app.logger.warning(f"[MailService] Could not send mail to {to_email}: {e}")
            return False, str(e)
