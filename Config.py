# Config.py
# Runtime settings for the weather host, read from the environment
# (and an optional .env file next to the process).

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_PATH = os.path.join(BASE_DIR, "data", "weather.db")


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    webhook_url: str = ""
    alert_threshold_c: float = 30.0
    alert_timeout_s: float = 5.0
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        # Real environment variables win over the .env file.
        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=False)

        return cls(
            db_path=os.getenv("DB_PATH", DEFAULT_DB_PATH),
            webhook_url=os.getenv("DISCORD_WEBHOOK_URL", ""),
            alert_threshold_c=float(os.getenv("ALERT_THRESHOLD_C", "30.0")),
            alert_timeout_s=float(os.getenv("ALERT_TIMEOUT_S", "5.0")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
