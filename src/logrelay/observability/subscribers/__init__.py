"""Event subscribers: route emitted events to logs and files."""
