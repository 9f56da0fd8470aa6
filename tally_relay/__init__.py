"""
tally-relay — vMix tally relay for browser shot timers.

Modules:
  core/    — switcher TCP session, handshake, tally decoding, broadcast hub, lifecycle
  api/     — FastAPI WebSocket channel, health endpoints, front-end assets
  config/  — Settings, env loading, YAML config
"""

__version__ = "1.0.0"
__author__ = "tally-relay"
