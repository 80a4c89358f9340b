import os
from dataclasses import dataclass


@dataclass
class ClientConfig:
    base_url: str = "http://127.0.0.1:8072"
    token: str | None = None
    timeout: float = 30.0
    poll_interval: float = 2.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=os.environ.get("SMARTMARK_BASE_URL", cls.base_url).rstrip("/"),
            token=os.environ.get("SMARTMARK_TOKEN") or None,
            timeout=float(os.environ.get("SMARTMARK_TIMEOUT", cls.timeout)),
            poll_interval=float(
                os.environ.get("SMARTMARK_POLL_INTERVAL", cls.poll_interval)
            ),
        )
