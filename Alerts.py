import logging

import requests

from MSG import Reading

logger = logging.getLogger(__name__)

# Alert threshold (tweakable via ALERT_THRESHOLD_C)
TEMP_HIGH_C = 30.0
WEBHOOK_TIMEOUT_S = 5.0


def format_alert(reading: Reading) -> str:
    return (
        "🔥 **HIGH TEMPERATURE ALERT!**\n"
        f"Current reading: 🌡️ **{reading.temperature:.1f}°C**, "
        f"💧 **{reading.humidity:.1f}%**"
    )


class AlertNotifier:
    """Posts a webhook message for every reading strictly above the threshold.

    There is no cooldown: two hot readings in a row give two messages.
    Delivery is a single bounded attempt; failures are logged and dropped.
    """

    def __init__(
        self,
        webhook_url: str,
        threshold: float = TEMP_HIGH_C,
        timeout_s: float = WEBHOOK_TIMEOUT_S,
    ) -> None:
        self.webhook_url = webhook_url
        self.threshold = threshold
        self.timeout_s = timeout_s

    def should_alert(self, reading: Reading) -> bool:
        return reading.temperature > self.threshold

    def evaluate(self, reading: Reading) -> bool:
        """Return True when a notification attempt was made."""
        if not self.webhook_url or not self.should_alert(reading):
            return False

        try:
            response = requests.post(
                self.webhook_url,
                json={"content": format_alert(reading)},
                timeout=self.timeout_s,
            )
            if response.ok:
                logger.info("Alert sent for reading id=%s (%.1f°C)", reading.id, reading.temperature)
            else:
                logger.warning(
                    "Alert webhook rejected reading id=%s: %s %s",
                    reading.id, response.status_code, response.text,
                )
        except Exception as e:
            logger.error("Error sending alert webhook for reading id=%s: %s", reading.id, e)

        return True
