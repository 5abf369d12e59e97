"""
Domain layer containing core business logic and domain services.

Submodules:
- custody: Chain-of-custody log (append, hash, verify).
- live: Stream lifecycle, archival and evidence capture.
- utils: Domain-specific utilities (e.g., ID generation, clock).
"""
