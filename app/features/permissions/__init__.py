"""
Authorization and privacy engine.

Resolves (role, resource kind, action) against the role permission matrix with
a built-in fallback, combines it with resource ownership and the request's
acting role, and redacts contact fields in records leaving the service.
"""
