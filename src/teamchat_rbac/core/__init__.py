"""Core RBAC definitions shared by the storage and resolution layers."""
