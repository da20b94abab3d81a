"""docgate -- security-hardened document synchronization and transformation gateway."""

__version__ = "0.1.0"
