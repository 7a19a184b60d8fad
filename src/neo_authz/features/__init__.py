"""Feature modules for neo-authz."""
