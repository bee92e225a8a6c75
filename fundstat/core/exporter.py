#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Prometheus exporter for the computed indicators, using prometheus_client.

Every indicator is one sample of a single labelled gauge; the last snapshot
build time and its outcome are exposed alongside.
"""
from __future__ import annotations

from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Dict, List, Optional, Sequence
import json
import logging
import threading
import time

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from ..indicators.indicator import Indicator
from ..shared.config import MetricsConfig

log = logging.getLogger(__name__)


class IndicatorExporter:
    def __init__(self, config: Optional[MetricsConfig] = None) -> None:
        self.config = config or MetricsConfig()
        self.registry = CollectorRegistry()
        pfx = self.config.prefix
        self.indicator_value = Gauge(f"{pfx}indicator_value", "Fund indicator value",
                                     ["id", "name", "unit"], registry=self.registry)
        self.last_build_timestamp_seconds = Gauge(f"{pfx}last_build_timestamp_seconds",
                                                  "Last snapshot build timestamp (epoch seconds)", registry=self.registry)
        self.last_build_success = Gauge(f"{pfx}last_build_success", "Last snapshot build outcome (0/1)",
                                        registry=self.registry)
        self.latest: List[Indicator] = []
        self._lock = threading.Lock()
        self._server: Optional[HTTPServer] = None

    def update(self, indicators: Sequence[Indicator]) -> None:
        """Replace the exposed indicator samples with a fresh set."""
        with self._lock:
            self.indicator_value.clear()
            for ind in indicators:
                self.indicator_value.labels(id=str(ind.id), name=ind.name, unit=ind.unit).set(float(ind.value))
            self.latest = list(indicators)
            self.last_build_timestamp_seconds.set(time.time())
            self.last_build_success.set(1)

    def mark_failed(self) -> None:
        with self._lock:
            self.last_build_timestamp_seconds.set(time.time())
            self.last_build_success.set(0)

    def render(self) -> bytes:
        with self._lock:
            return generate_latest(self.registry)

    def indicators_json(self) -> bytes:
        with self._lock:
            payload: Dict[str, object] = {"indicators": [i.to_dict() for i in self.latest]}
        return json.dumps(payload).encode("utf-8")

    def start_http(self) -> None:
        """Serve the metrics path and /api/indicators in a background thread."""
        cfg = self.config
        outer_self = self

        class Handler(BaseHTTPRequestHandler):  # type: ignore
            def log_message(self, format: str, *args) -> None:  # quiet logs
                return

            def _send(self_inner, status: int, body: bytes, content_type: str) -> None:  # type: ignore
                self_inner.send_response(status)
                self_inner.send_header("Content-Type", content_type)
                self_inner.send_header("Content-Length", str(len(body)))
                self_inner.end_headers()
                self_inner.wfile.write(body)

            def do_GET(self_inner):  # type: ignore
                path = self_inner.path.split("?", 1)[0]
                if path == cfg.path:
                    self_inner._send(200, outer_self.render(), CONTENT_TYPE_LATEST)
                elif path == "/api/indicators":
                    self_inner._send(200, outer_self.indicators_json(), "application/json")
                else:
                    self_inner._send(404, b"not found", "text/plain; charset=utf-8")

        self._server = HTTPServer((cfg.listen_address, int(cfg.listen_port)), Handler)
        t = threading.Thread(target=self._server.serve_forever, daemon=True)
        t.start()
        log.info(f"Metrics server listening on {cfg.listen_address}:{cfg.listen_port}{cfg.path}")

    def stop_http(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
