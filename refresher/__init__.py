"""
refresher package - Blocklist Cache Refresher

Modules:
    config: Runtime configuration, tool path probing and the blocklists file loader
    strategies: Transfer strategies (mirror sync, filtered, conditional, plain download)
    updater: Concurrent dispatcher, error reporting and CLI entry point
"""

__version__ = "1.0.0"
