"""Chromecast protocol client for cast2mqtt."""

from __future__ import annotations

import cast2mqtt.chromecast.adapter as _adapter

ChromecastClient = _adapter.ChromecastClient
ChromecastMediaHandle = _adapter.ChromecastMediaHandle

__all__ = ["ChromecastClient", "ChromecastMediaHandle"]
