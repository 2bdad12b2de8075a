"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- uploads: Local staging of incoming upload streams
- storage: Object storage (R2) and local file cleanup
- snowflake: Database persistence

These wrappers translate between external formats and our domain models.
"""
