"""
Cairn Core Package

Entity synchronization and live tracking.

Invariants:
- Rendered POI entities are in bijection with the latest POI sequence
- At most one position marker, present only while tracking has a fix
- One pick handler per render host instance
- Teardown order: input handlers, then entities, then the host
"""

__version__ = "1.0.0"
