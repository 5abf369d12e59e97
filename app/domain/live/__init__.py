"""
Live streaming domain logic.

Includes:
- stream: Stream lifecycle, broadcast start/stop.
- archive: Archival pipeline and stalled-archive reconciliation.
- evidence: Evidence capture and deferred uploads.
"""
