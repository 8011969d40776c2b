"""Alert policy and delivery sinks."""

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Protocol

import requests

from .models import Alert, CheckResult, new_id

logger = logging.getLogger(__name__)

SERVICE_NAME = "api-contract-monitoring"
DEFAULT_TIMEOUT = 10


class AlertPolicy:
    """Turns the violations of one check into zero or more alerts."""

    def __init__(self, alert_threshold: int = 5):
        self.alert_threshold = alert_threshold

    def evaluate(self, result: CheckResult) -> list[Alert]:
        alerts = []
        violations = result.violations
        critical = [v for v in violations if v.severity == "critical"]

        if critical:
            alerts.append(Alert(
                id=new_id("alert_critical"),
                type="critical",
                severity="critical",
                title="Critical API Contract Violations Detected",
                message=f"{len(critical)} critical violations found",
                details={"violations": [v.model_dump(mode="json") for v in critical]},
            ))

        if len(violations) >= self.alert_threshold:
            alerts.append(Alert(
                id=new_id("alert_threshold"),
                type="threshold",
                severity="warning",
                title="Violation Threshold Exceeded",
                message=f"{len(violations)} violations detected (threshold: {self.alert_threshold})",
                details={"violation_count": len(violations), "threshold": self.alert_threshold},
            ))

        failed = result.failed_checks
        if failed:
            alerts.append(Alert(
                id=new_id("alert_failure"),
                type="monitoring_failure",
                severity="critical",
                title="Monitoring Check Failed",
                message=f"Sub-checks failed: {', '.join(failed)}",
                details={"failed_checks": failed},
            ))

        return alerts


class AlertSink(Protocol):
    def deliver(self, alert: Alert) -> None: ...


class WebhookSink:
    """POSTs the alert as JSON to a generic webhook."""

    def __init__(self, url: str, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def deliver(self, alert: Alert) -> None:
        payload = {
            "alert": alert.model_dump(mode="json"),
            "service": SERVICE_NAME,
            "timestamp": alert.timestamp.isoformat(),
        }
        response = self.session.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()


class ChatSink:
    """Slack-style incoming webhook with a colour-coded attachment."""

    def __init__(self, url: str, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    @staticmethod
    def payload(alert: Alert) -> dict:
        emoji = ":rotating_light:" if alert.severity == "critical" else ":warning:"
        return {
            "text": f"{emoji} {alert.title}",
            "attachments": [{
                "color": "danger" if alert.severity == "critical" else "warning",
                "fields": [
                    {"title": "Severity", "value": alert.severity, "short": True},
                    {"title": "Type", "value": alert.type, "short": True},
                    {"title": "Message", "value": alert.message, "short": False},
                    {"title": "Timestamp", "value": alert.timestamp.isoformat(), "short": True},
                ],
            }],
        }

    def deliver(self, alert: Alert) -> None:
        response = self.session.post(self.url, json=self.payload(alert), timeout=self.timeout)
        response.raise_for_status()


class EmailSink:
    def __init__(
        self,
        host: str,
        sender: str,
        recipients: list[str],
        port: int = 25,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.recipients = list(recipients)
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, alert: Alert) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"[{alert.severity.upper()}] {alert.title}"
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        message.set_content(
            f"{alert.message}\n\n"
            f"Type: {alert.type}\n"
            f"Severity: {alert.severity}\n"
            f"Timestamp: {alert.timestamp.isoformat()}\n"
        )
        return message

    def deliver(self, alert: Alert) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(self.build_message(alert))


def dispatch(alert: Alert, sinks: Iterable[AlertSink]) -> int:
    """Deliver ``alert`` to every sink; returns how many deliveries succeeded."""
    delivered = 0
    for sink in sinks:
        try:
            sink.deliver(alert)
        except (requests.RequestException, smtplib.SMTPException, OSError) as e:
            logger.error("Alert delivery via %s failed: %s", type(sink).__name__, e)
            continue
        except Exception:
            logger.exception("Alert delivery via %s failed", type(sink).__name__)
            continue
        delivered += 1
    return delivered
