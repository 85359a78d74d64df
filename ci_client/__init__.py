"""
CI Client module.

HTTP client and command line for sending events to the gateway.
"""
