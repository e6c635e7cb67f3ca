"""Service layer for streak logic.

Layer hierarchy:
    Routes (HTTP) -> Services (streak rules) -> Repositories (Database)

- streak_calculation_service: pure streak engine over store protocols
- streaks_service: per-user update/rebuild/reset and the batch refresh
- reconciliation_service: recomputes streak_history from stored submissions
- leetcode_service: GraphQL client for recent accepted submissions
- timezone_service: offset normalization and local-day helpers

Services raise domain exceptions; routes map them to HTTP status codes.
"""
