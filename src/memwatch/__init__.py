"""memwatch - memory watchdog for supervisord-managed processes."""

__version__ = "0.1.0"
