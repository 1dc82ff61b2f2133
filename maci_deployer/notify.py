"""
Slack notifications for deployment runs
"""

import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


def send_slack_alert(webhook: Optional[str], message: str, fields: Optional[Dict[str, str]] = None) -> bool:
    """Post a message to a Slack webhook; returns False when nothing was sent"""
    if not webhook:
        return False

    payload = {
        "text": f"MACI deployment: {message}",
        "attachments": [
            {
                "fields": [
                    {"title": title, "value": str(value), "short": True}
                    for title, value in (fields or {}).items()
                ]
            }
        ],
    }

    try:
        response = requests.post(webhook, json=payload, timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send Slack alert: {e}")
        return False
    return True
