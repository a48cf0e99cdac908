"""Feature packages built on top of the core RBAC definitions."""
