"""admincms — administrative CMS backend.

The authentication and authorization core: password verification,
access/refresh token sessions, and role-based permission checks.
"""

__version__ = "0.1.0"
