"""userlink.core — constants, configuration, exceptions, and logging setup."""
