import logging
from datetime import datetime, timezone

import requests

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()


class SlackErrorHandler(logging.Handler):
    """Posts ERROR and CRITICAL records to a Slack webhook."""

    def __init__(self):
        super().__init__(level=logging.ERROR)
        self.webhook = configs.SLACK_WEBHOOK_URL
        self.enabled = bool(self.webhook) and configs.SLACK_ALERTS_ENABLED

    def build_text(self, record) -> str:
        env = configs.APPLICATION_ENVIRONMENT.upper()
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        lines = [
            f":rotating_light: {configs.APP_NAME} {env} - {record.levelname}",
            f"- Timestamp: {ts}",
            f"- Logger: {record.name}",
            f"- Location: {record.module}.{record.funcName}:{record.lineno}",
            "```" + record.getMessage() + "```",
        ]
        return "\n".join(lines)

    def emit(self, record):
        if not self.enabled:
            return
        try:
            requests.post(self.webhook, json={"text": self.build_text(record)}, timeout=2)
        except requests.RequestException:
            self.handleError(record)


slack_handler = SlackErrorHandler()
