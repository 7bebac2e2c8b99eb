"""Transactional email through Resend. Sends are never retried."""

import html

import resend


class ResendMailer:
    def __init__(self, api_key, from_address, *, resend_module=resend, logger=None):
        self.api_key = str(api_key or '').strip()
        self.from_address = from_address
        self.resend_module = resend_module
        self.logger = logger

    @property
    def configured(self):
        return bool(self.api_key)

    def send(self, to_address, subject, body_html):
        """Return True when the provider accepted the message."""
        if not self.configured:
            if self.logger is not None:
                self.logger.warning(f"RESEND_API_KEY not configured, email to {to_address} not sent")
            return False
        try:
            self.resend_module.api_key = self.api_key
            self.resend_module.Emails.send({
                'from': self.from_address,
                'to': [to_address],
                'subject': subject,
                'html': body_html,
            })
            return True
        except Exception as exc:
            if self.logger is not None:
                self.logger.error(f"Email send to {to_address} failed: {exc}")
            return False


def build_otp_email(code, ttl_minutes, app_name='EXAVY'):
    safe_name = html.escape(app_name)
    subject = f"Your {app_name} verification code"
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #6366f1; text-align: center;">{safe_name}</h1>
      <div style="background: #f8fafc; border-radius: 12px; padding: 30px; text-align: center;">
        <h2 style="color: #1e293b;">Verification code</h2>
        <p style="color: #64748b;">Use this code to verify your email address:</p>
        <div style="background: #6366f1; color: white; font-size: 32px; font-weight: bold; letter-spacing: 8px; padding: 20px 40px; border-radius: 8px; display: inline-block;">
          {html.escape(code)}
        </div>
        <p style="color: #94a3b8; font-size: 14px;">This code expires in {int(ttl_minutes)} minutes and can be used once.</p>
      </div>
      <p style="color: #94a3b8; font-size: 12px; text-align: center;">If you did not request this code, you can ignore this email.</p>
    </div>
    """
    return subject, body.strip()
