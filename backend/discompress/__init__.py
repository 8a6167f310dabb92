"""Discompress backend.

API-only service that re-encodes uploaded videos so they fit under a
target file size (Discord-style attachment limits) and streams the result
back to the caller.

Modules:
    - core: Configuration, logging, metrics, tracing, middleware
    - modules.compression: Probe, bitrate planning, size-targeted encoding,
      admission queue and delivery cleanup
"""

__version__ = "0.1.0"
