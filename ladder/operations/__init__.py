"""
Operations Layer

This package holds the ladder's business logic. Each operations class
composes database reads and writes into complete workflows, enforces the
business rules and raises LadderError subclasses when a rule is violated.

Architecture:
- Database layer: models, sessions, transactions and per-season locks
- Operations layer: business logic composition and workflows
- Service layer: request-facing facade that turns errors into results

Each operations module focuses on a specific domain:
- LadderOperations: position maintenance (insert, remove, move, promote, rollback, repair)
- ChallengeOperations: challenge eligibility and the challenge state machine
- MatchOperations: score submission and winner determination
- DisputeOperations: disputes and admin resolution
- PlayoffOperations: bracket generation and progression
- SeasonOperations / AdminOperations: seasons and admin membership
"""
