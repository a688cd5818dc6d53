"""Email service for results notifications."""

import asyncio
import html
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from evote.core.config import get_settings
from evote.core.logging_config import get_logger
from evote.services.notifications import ResultsPublishedEvent

logger = get_logger(__name__)
settings = get_settings()


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.smtp_tls = settings.SMTP_TLS
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.recipients = settings.results_notify_emails_list

    async def send_results_published_email(self, event: ResultsPublishedEvent) -> bool:
        """
        Announce published results to the configured recipients.

        Args:
            event: The publication that just happened

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        if not self.recipients:
            logger.debug("No results notification recipients configured")
            return False

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = f"Results published - {event.election_title}"
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = ", ".join(self.recipients)

            results_link = (
                f"{settings.FRONTEND_URL}/elections/{event.election_id}/results"
            )
            winners = ", ".join(event.winners) if event.winners else "No votes cast"

            body = f"""
            <html>
            <body>
                <h2>Election results published</h2>
                <p>All commissioners have approved the results of
                <strong>{html.escape(event.election_title)}</strong>.</p>
                <p>Total votes: {event.total_votes}<br>
                Leading: {html.escape(winners)}</p>
                <p><a href="{results_link}" style="background-color: #1976d2; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px;">View Results</a></p>
                <br>
                <p>Best regards,<br>{self.from_name}</p>
            </body>
            </html>
            """

            text = f"""
            Election results published

            All commissioners have approved the results of {event.election_title}.

            Total votes: {event.total_votes}
            Leading: {winners}

            View the results at:
            {results_link}

            Best regards,
            {self.from_name}
            """

            msg.attach(MIMEText(text, "plain"))
            msg.attach(MIMEText(body, "html"))

            # Send email in thread pool to avoid blocking
            await asyncio.get_running_loop().run_in_executor(
                None, self._send_email_sync, msg.as_string()
            )

            logger.info(
                f"Results notification sent for election {event.election_id} "
                f"to {len(self.recipients)} recipient(s)"
            )
            return True

        except Exception as e:
            logger.error(
                f"Failed to send results notification for election "
                f"{event.election_id}: {str(e)}"
            )
            return False

    def _send_email_sync(self, email_content: str) -> None:
        """Send email synchronously (called from thread pool)."""
        try:
            context = ssl.create_default_context()

            if self.smtp_tls:
                server = smtplib.SMTP(self.smtp_server, self.smtp_port)
                server.starttls(context=context)
            else:
                server = smtplib.SMTP_SSL(
                    self.smtp_server, self.smtp_port, context=context
                )

            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)

            server.sendmail(self.from_email, self.recipients, email_content)
            server.quit()

        except Exception as e:
            logger.error(f"SMTP error: {str(e)}")
            raise


# Global email service instance
email_service = EmailService()
