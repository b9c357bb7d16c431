"""
Permission system: principals, resolution of group based permissions and
the FastAPI dependencies enforcing them.

- principal: authenticated caller with groups and permission codenames
- core: resolution from the database with per-user caching, permission checks
- management: group membership and group permission assignment
- auth: token authentication and dependency factories
"""
