"""
Shared, cross-cutting code for the service.

`core/` holds small building blocks that feature packages use (DB wiring,
settings, the TzKT client, rate limiting and backoff, task supervision).
Keep feature-specific SQL and business logic in the corresponding feature
package (e.g. `delegations/`).
"""
