"""
Services layer - business logic goes here, routes stay thin.

Core components:
- cache_service: TTL cache shared by every external fetcher
- geo_index: proximity search over emergency resources
- audit_trail: atomic, append-only change log of disaster records
- event_bus: topic-scoped real-time fan-out

Coordinator services (disaster, resource, feed, verification, geocoding)
compose the core; coordinator.build_coordinator wires one app's worth.
"""
