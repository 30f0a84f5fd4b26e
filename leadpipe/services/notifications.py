"""
Notifications — Slack webhook alerts for leads that need an operator.

Sent when a job exhausts its attempts (dead-letter) or a lead is blocked by
the generator's safety policy. Notification failure never blocks the pipeline.
"""
import logging

import requests

logger = logging.getLogger('services.notifications')


class SlackNotifier:

    def __init__(self, webhook_url, timeout=10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def notify_dead_letter(self, stage, lead, job, status, error):
        """Post a dead-letter alert for one lead."""
        if not self.webhook_url:
            return

        try:
            blocks = [
                {
                    "type": "header",
                    "text": {
                        "type": "plain_text",
                        "text": f"Lead needs attention — {lead.domain}",
                    }
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Stage:* {stage}"},
                        {"type": "mrkdwn", "text": f"*Status:* {status.value}"},
                        {"type": "mrkdwn", "text": f"*Attempts:* {job.attempt}/{job.max_attempts}"},
                        {"type": "mrkdwn", "text": f"*Lead:* `{lead.id}`"},
                    ]
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"Error: {str(error)[:300]}"}]
                },
            ]
            requests.post(self.webhook_url, json={"blocks": blocks}, timeout=self.timeout)
            logger.info("Dead-letter notification sent for lead %s", lead.id[:8])

        except Exception:
            logger.error("Failed to send dead-letter notification for lead %s", lead.id, exc_info=True)
