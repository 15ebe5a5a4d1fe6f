"""Grafana Loki sink for notification events.

Used by QueuedDispatcher and the Celery worker when
STITCHFLOOR_LOKI_ENABLED=true. Each event becomes one log line in a stream
labelled with the static labels plus the event type and, when known, the
lot number.
"""

import json
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..config import EngineConfig
from .events import NotificationEvent


def parse_labels(spec: str) -> Dict[str, str]:
    """``"service=stitchfloor, env=prod"`` -> ``{"service": "stitchfloor", "env": "prod"}``."""
    pairs = (part.split("=", 1) for part in spec.split(",") if "=" in part)
    return {k.strip(): v.strip() for k, v in pairs if k.strip()}


def _event_ns(event: NotificationEvent) -> str:
    try:
        return str(int(datetime.fromisoformat(event.created_at).timestamp() * 1e9))
    except ValueError:
        return str(int(time.time() * 1e9))


class LokiClient:
    def __init__(self, endpoint: str, labels: str = "service=stitchfloor", timeout_s: int = 5):
        self.endpoint = endpoint.rstrip("/")
        self.labels = parse_labels(labels)
        self.timeout_s = timeout_s

    @property
    def push_url(self) -> str:
        return f"{self.endpoint}/loki/api/v1/push"

    def _labels_for(self, event: NotificationEvent) -> Dict[str, str]:
        labels = dict(self.labels)
        labels["event_type"] = event.type.value
        if event.lot_number:
            labels["lot"] = event.lot_number
        return labels

    def streams(self, events: Iterable[NotificationEvent]) -> List[Dict[str, Any]]:
        """Group events into Loki streams, one per distinct label set."""
        grouped: Dict[tuple, Dict[str, Any]] = {}
        for event in events:
            labels = self._labels_for(event)
            stream = grouped.setdefault(
                tuple(sorted(labels.items())), {"stream": labels, "values": []},
            )
            stream["values"].append([_event_ns(event), json.dumps(event.serialize())])
        return list(grouped.values())

    def push(self, events: Iterable[NotificationEvent]) -> None:
        streams = self.streams(events)
        if not streams:
            return
        resp = requests.post(
            self.push_url,
            data=json.dumps({"streams": streams}),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_s,
        )
        resp.raise_for_status()

    def deliver(self, event: NotificationEvent) -> None:
        """Sink interface: push a single event."""
        self.push([event])


def get_loki_client(config: EngineConfig) -> Optional[LokiClient]:
    if not config.loki_enabled:
        return None
    return LokiClient(config.loki_endpoint, config.loki_labels, config.loki_timeout_s)
