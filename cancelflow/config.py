"""
cancelflow.config
-----------------
Environment-driven settings (pulls a local .env first).

Environment
-----------
SUPABASE_URL
SUPABASE_SERVICE_ROLE_KEY   (or SUPABASE_KEY / SUPABASE_SERVICE_KEY / SUPABASE_ANON_KEY)
CANCELFLOW_CANCELLATIONS_TABLE   default "cancellations"
CANCELFLOW_SUBSCRIPTIONS_TABLE   default "subscriptions"
CANCELFLOW_LONG_TEXT_MIN_LENGTH  default 25
CANCELFLOW_VARIANT_STRATEGY      "deterministic" | "secure"
CANCELFLOW_REQUEST_TIMEOUT       seconds, default 10
CANCELFLOW_FLOW_PATH             optional JSON file with a replacement step graph
LOG_LEVEL                        default INFO
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()  # pulls vars from .env

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"


class Settings(BaseModel):
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    cancellations_table: str = "cancellations"
    subscriptions_table: str = "subscriptions"

    long_text_min_length: int = 25
    variant_strategy: Literal["deterministic", "secure"] = "deterministic"
    request_timeout: float = 10.0
    flow_path: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        raw = {
            "supabase_url": env.get("SUPABASE_URL"),
            "supabase_key": (
                env.get("SUPABASE_SERVICE_ROLE_KEY")
                or env.get("SUPABASE_KEY")
                or env.get("SUPABASE_SERVICE_KEY")
                or env.get("SUPABASE_ANON_KEY")
            ),
            "cancellations_table": env.get("CANCELFLOW_CANCELLATIONS_TABLE"),
            "subscriptions_table": env.get("CANCELFLOW_SUBSCRIPTIONS_TABLE"),
            "long_text_min_length": env.get("CANCELFLOW_LONG_TEXT_MIN_LENGTH"),
            "variant_strategy": env.get("CANCELFLOW_VARIANT_STRATEGY"),
            "request_timeout": env.get("CANCELFLOW_REQUEST_TIMEOUT"),
            "flow_path": env.get("CANCELFLOW_FLOW_PATH"),
            "log_level": env.get("LOG_LEVEL"),
        }
        # unset vars fall back to the field defaults
        return cls(**{k: v for k, v in raw.items() if v not in (None, "")})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=level or get_settings().log_level, format=LOG_FORMAT)


__all__ = ["Settings", "get_settings", "configure_logging", "LOG_FORMAT"]
