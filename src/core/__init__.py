"""Core domain package for teams-relay.

Core contains activity classification, correlation keys, subscription
bookkeeping, and dispatch without any Bot Framework HTTP or storage-specific
code, keeping the routing logic portable.
"""
