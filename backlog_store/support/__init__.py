"""
Support layer for shared backlog utilities.

Provides configuration loading, backlog folder layout and bootstrap,
subprocess environments, and status-change callbacks used by the store and
the branch reconciler.
"""
