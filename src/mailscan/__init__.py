"""mailscan - letter scan submission and status tracking."""

__version__ = "0.1.0"
