"""Email service with template rendering and sending"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.mime.application import MIMEApplication
from typing import List, Dict, Any, Optional
import logging
from pathlib import Path
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings
from app.utils.helpers import format_currency

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

class EmailService:
    """Email service with template rendering"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME

        # Setup Jinja2 for email templates
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml'])
        )
        self.env.filters["currency"] = format_currency

    def build_message(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
        reply_to: Optional[str] = None
    ) -> MIMEMultipart:
        """Assemble a multipart message with optional HTML and attachments"""
        msg = MIMEMultipart('mixed')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to_email
        if reply_to:
            msg['Reply-To'] = reply_to

        # Create alternative part for text/html
        msg_alternative = MIMEMultipart('alternative')
        msg.attach(msg_alternative)
        msg_alternative.attach(MIMEText(body, 'plain', 'utf-8'))
        if html_body:
            msg_alternative.attach(MIMEText(html_body, 'html', 'utf-8'))

        for attachment in attachments or []:
            self._attach_file(msg, attachment)

        return msg

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
        reply_to: Optional[str] = None
    ) -> bool:
        """Send email; failures are logged and reported as False"""
        try:
            msg = self.build_message(to_email, subject, body, html_body, attachments, reply_to)

            async with aiosmtplib.SMTP(
                hostname=self.smtp_host,
                port=self.smtp_port,
                use_tls=settings.SMTP_USE_TLS,
                start_tls=settings.SMTP_START_TLS if not settings.SMTP_USE_TLS else False
            ) as smtp:
                if self.smtp_user:
                    await smtp.login(self.smtp_user, self.smtp_password or "")
                await smtp.send_message(msg, recipients=[to_email])

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return False

    def _attach_file(self, msg: MIMEMultipart, attachment: Dict[str, Any]):
        """Attach file to email"""
        filename = attachment['filename']
        content = attachment['content']
        content_type = attachment.get('content_type', 'application/octet-stream')

        if content_type.startswith('text/'):
            part = MIMEText(content, _subtype=content_type.split('/')[-1])
        else:
            part = MIMEApplication(content, _subtype=content_type.split('/')[-1])

        part.add_header('Content-Disposition', f'attachment; filename="{filename}"')
        msg.attach(part)

    async def send_purchase_receipt(
        self,
        to_email: str,
        receipt_data: Dict[str, Any],
        attachments: Optional[List[Dict[str, Any]]] = None
    ) -> bool:
        """Send the buyer's receipt, with the ebook attached when available"""
        template = self.env.get_template("buyer_receipt.html")
        html_body = template.render(
            **receipt_data,
            support_email=settings.SUPPORT_EMAIL,
            app_name=settings.SMTP_FROM_NAME
        )

        amount = format_currency(receipt_data["amount"], receipt_data["currency"])
        text_body = (
            f"Hi {receipt_data['buyer_name']},\n\n"
            f"Thank you for purchasing {receipt_data['product_title']}.\n"
            f"Amount paid: {amount}\n"
            f"Order: {receipt_data['order_id']}\n"
            f"Payment: {receipt_data['payment_id']}\n"
        )
        if attachments:
            text_body += "\nYour ebook is attached to this email.\n"

        return await self.send_email(
            to_email=to_email,
            subject=f"Your receipt for {receipt_data['product_title']}",
            body=text_body,
            html_body=html_body,
            attachments=attachments,
            reply_to=settings.SUPPORT_EMAIL
        )

    async def send_commission_alert(
        self,
        to_email: str,
        alert_data: Dict[str, Any]
    ) -> bool:
        """Tell an affiliate about a sale credited to their code"""
        template = self.env.get_template("affiliate_commission.html")
        html_body = template.render(**alert_data, app_name=settings.SMTP_FROM_NAME)

        commission = format_currency(alert_data["commission_amount"], alert_data["currency"])
        text_body = (
            f"Hi {alert_data['affiliate_name']},\n\n"
            f"{alert_data['buyer_name']} bought {alert_data['product_title']} "
            f"for {format_currency(alert_data['amount'], alert_data['currency'])} "
            f"using your code {alert_data['code']}.\n"
            f"Commission earned: {commission}\n"
            f"Time: {alert_data['paid_at']}\n"
        )

        return await self.send_email(
            to_email=to_email,
            subject=f"New sale: you earned {commission}",
            body=text_body,
            html_body=html_body
        )
