import smtplib
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import requests

from contract_monitor.monitor.alerts import AlertPolicy, ChatSink, EmailSink, WebhookSink, dispatch
from contract_monitor.monitor.models import Alert, CheckResult, SubCheckResult, Violation

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _violation(severity: str, i: int = 0) -> Violation:
    return Violation(id=f"v{i}", type="api_consistency", severity=severity, message="m", source="s")


def _result(violations=(), failed: str | None = None) -> CheckResult:
    def sub(name):
        if name == failed:
            return SubCheckResult(name=name, status="check_failed")
        return SubCheckResult(name=name, status="healthy")

    consistency = sub("consistency").model_copy(update={"violations": list(violations)})
    return CheckResult(
        check_id="check_1", timestamp=NOW,
        consistency=consistency, validation=sub("validation"), schema_check=sub("schema"),
    )


def _alert(severity: str = "critical") -> Alert:
    return Alert(
        id="alert_1", type="critical", severity=severity,
        title="Critical API Contract Violations Detected",
        message="2 critical violations found", timestamp=NOW,
    )


class TestAlertPolicy:
    def test_no_alerts_for_clean_check(self):
        assert AlertPolicy().evaluate(_result()) == []

    def test_critical_alert(self):
        [alert] = AlertPolicy().evaluate(_result([_violation("critical")]))
        assert alert.type == "critical"
        assert alert.severity == "critical"
        assert alert.message == "1 critical violations found"

    def test_threshold_alert(self):
        violations = [_violation("warning", i) for i in range(5)]
        [alert] = AlertPolicy(alert_threshold=5).evaluate(_result(violations))
        assert alert.type == "threshold"
        assert alert.severity == "warning"
        assert alert.details == {"violation_count": 5, "threshold": 5}

    def test_below_threshold(self):
        violations = [_violation("warning", i) for i in range(4)]
        assert AlertPolicy(alert_threshold=5).evaluate(_result(violations)) == []

    def test_monitoring_failure_alert(self):
        alerts = AlertPolicy().evaluate(_result(failed="schema"))
        assert [(a.type, a.severity) for a in alerts] == [("monitoring_failure", "critical")]
        assert alerts[0].details["failed_checks"] == ["schema"]

    def test_all_three(self):
        violations = [_violation("critical")] + [_violation("warning", i) for i in range(1, 5)]
        alerts = AlertPolicy(alert_threshold=5).evaluate(_result(violations, failed="validation"))
        assert [a.type for a in alerts] == ["critical", "threshold", "monitoring_failure"]


class TestWebhookSink:
    def test_posts_json_payload(self):
        session = MagicMock()
        WebhookSink("https://hooks.example.com/x", session=session, timeout=3).deliver(_alert())

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args == ("https://hooks.example.com/x",)
        assert kwargs["timeout"] == 3
        assert kwargs["json"]["service"] == "api-contract-monitoring"
        assert kwargs["json"]["alert"]["id"] == "alert_1"
        session.post.return_value.raise_for_status.assert_called_once()


class TestChatSink:
    def test_payload_colour(self):
        critical = ChatSink.payload(_alert("critical"))
        warning = ChatSink.payload(_alert("warning"))
        assert critical["attachments"][0]["color"] == "danger"
        assert warning["attachments"][0]["color"] == "warning"
        fields = [f["title"] for f in critical["attachments"][0]["fields"]]
        assert fields == ["Severity", "Type", "Message", "Timestamp"]

    def test_deliver(self):
        session = MagicMock()
        ChatSink("https://hooks.slack.com/x", session=session).deliver(_alert())
        assert session.post.call_args.kwargs["json"]["text"].endswith("Critical API Contract Violations Detected")


class TestEmailSink:
    @patch("contract_monitor.monitor.alerts.smtplib.SMTP")
    def test_sends_message(self, MockSMTP):
        smtp = MagicMock()
        MockSMTP.return_value.__enter__.return_value = smtp

        sink = EmailSink(host="mail.local", sender="monitor@example.com", recipients=["ops@example.com"],
                         username="u", password="p", use_tls=True)
        sink.deliver(_alert())

        MockSMTP.assert_called_once_with("mail.local", 25, timeout=10)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("u", "p")
        message = smtp.send_message.call_args.args[0]
        assert message["Subject"] == "[CRITICAL] Critical API Contract Violations Detected"
        assert message["To"] == "ops@example.com"


class TestDispatch:
    def test_failures_are_logged_not_raised(self, caplog):
        failing = MagicMock()
        failing.deliver.side_effect = requests.ConnectionError("down")
        smtp_failing = MagicMock()
        smtp_failing.deliver.side_effect = smtplib.SMTPException("refused")
        ok = MagicMock()

        delivered = dispatch(_alert(), [failing, smtp_failing, ok])

        assert delivered == 1
        ok.deliver.assert_called_once()
        assert "Alert delivery via MagicMock failed" in caplog.text

    def test_no_sinks(self):
        assert dispatch(_alert(), []) == 0

    def test_unexpected_sink_error_is_logged(self, caplog):
        broken = MagicMock()
        broken.deliver.side_effect = RuntimeError("sink misconfigured")
        ok = MagicMock()

        assert dispatch(_alert(), [broken, ok]) == 1
        ok.deliver.assert_called_once()
        assert "sink misconfigured" in caplog.text
