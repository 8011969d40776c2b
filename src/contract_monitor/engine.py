"""The explicitly constructed owner of every validation and monitoring component."""

import logging
from pathlib import Path
from typing import Callable

from contract_monitor.config import MonitorSettings
from contract_monitor.drift.analyzer import ConsistencyAnalyzer
from contract_monitor.drift.scanner import SourceScanner
from contract_monitor.monitor.alerts import AlertPolicy, AlertSink, ChatSink, EmailSink, WebhookSink
from contract_monitor.monitor.checks import ConsistencyCheck, SpecHealthCheck, ValidationHealthCheck
from contract_monitor.monitor.loop import MonitorLoop
from contract_monitor.monitor.store import ReportStore
from contract_monitor.spec.detect import read_document
from contract_monitor.spec.store import SchemaSpecStore
from contract_monitor.validation.routes import RouteMatcher
from contract_monitor.validation.runtime import RequestResponseValidator, ValidationStats
from contract_monitor.validation.schema import SchemaValidator

logger = logging.getLogger(__name__)


def build_sinks(settings: MonitorSettings) -> list[AlertSink]:
    sinks: list[AlertSink] = []
    if settings.webhook_url:
        sinks.append(WebhookSink(settings.webhook_url))
    if settings.slack_webhook:
        sinks.append(ChatSink(settings.slack_webhook))
    if settings.email is not None and settings.email.recipients:
        email = settings.email
        sinks.append(EmailSink(
            host=email.host,
            port=email.port,
            sender=email.sender,
            recipients=email.recipients,
            username=email.username,
            password=email.password,
            use_tls=email.use_tls,
        ))
    return sinks


class ValidatorEngine:
    """Holds the contract store, the HTTP-boundary validator and the monitor.

    The host application builds one engine and hands ``runtime`` to its
    request pipeline; ``monitor`` shares the same validation counters.
    """

    def __init__(
        self,
        store: SchemaSpecStore,
        settings: MonitorSettings | None = None,
        sinks: list[AlertSink] | None = None,
        document: Callable[[], dict | None] | None = None,
        report_store: ReportStore | None = None,
    ):
        self.settings = settings or MonitorSettings()
        s = self.settings

        self.store = store
        self.validator = SchemaValidator(store)
        self.matcher = RouteMatcher(store.endpoints.values())
        self.stats = ValidationStats(recent_error_capacity=s.recent_error_capacity)
        self.runtime = RequestResponseValidator(
            store,
            stats=self.stats,
            matcher=self.matcher,
            validator=self.validator,
            development_mode=s.development_mode,
            reject_unresolved=s.reject_unresolved,
        )
        self.scanner = SourceScanner(api_prefix=s.api_prefix)
        self.analyzer = ConsistencyAnalyzer(internal_paths=tuple(s.internal_paths))
        self.report_store = report_store or ReportStore(s.data_dir, max_reports=s.max_reports)

        self.monitor = MonitorLoop(
            consistency=ConsistencyCheck(store, s.source_root, self.scanner, self.analyzer),
            validation=ValidationHealthCheck(
                self.stats,
                error_threshold=s.alert_threshold,
                request_failure_threshold=s.request_failure_threshold,
                response_failure_threshold=s.response_failure_threshold,
            ),
            schema=SpecHealthCheck(document or (lambda: store.document), s.expected_version),
            policy=AlertPolicy(s.alert_threshold),
            sinks=build_sinks(s) if sinks is None else sinks,
            store=self.report_store,
            stats=self.stats,
            check_interval=s.check_interval,
            retention_days=s.retention_days,
            max_reports=s.max_reports,
            enable_alerts=s.enable_alerts,
            enable_reports=s.enable_reports,
            report_frequency=s.report_frequency,
            sub_check_timeout=s.sub_check_timeout,
        )

    @classmethod
    def from_settings(cls, settings: MonitorSettings, restore: bool = True) -> "ValidatorEngine":
        """Load the contract file named in ``settings`` and wire everything up.

        The schema health check re-reads the contract file on each cycle so
        edits made while the monitor runs are picked up.
        """
        contract_path = Path(settings.contract_path)
        store = SchemaSpecStore.from_file(contract_path)
        engine = cls(store, settings, document=lambda: read_document(contract_path))
        if restore:
            state = engine.report_store.load_state()
            if state:
                engine.monitor.restore(state)
                logger.info("Restored %d violations from %s", len(engine.monitor.violations), engine.report_store.state_path)
        return engine

    def start(self) -> None:
        self.monitor.start()

    def stop(self) -> None:
        self.monitor.stop()
        self.report_store.close()
