"""Authentication and authorization.

Learn: Users log in with email/password and receive two tokens:
1. Access token → short-lived JWT, sent as `Authorization: Bearer ...`
2. Refresh token → long-lived opaque secret, exchanged (and rotated) for
   a new pair at /refresh-token

Protected routes resolve the Bearer token to a CurrentIdentity and may
additionally require "resource:action" permissions via require_permissions.
"""
