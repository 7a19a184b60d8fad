"""Core exceptions and value objects shared by all neo-authz features."""
