"""
Service layer for the singles ladder.

- BaseService: shared database access and retry on transient errors
- NotificationService: best-effort notification delivery
- LadderService: request-facing facade returning ActionResult values
"""
