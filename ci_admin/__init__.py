"""CI Admin module: command line for managing gateway projects."""
