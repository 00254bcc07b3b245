"""
Bounded-context modules.

Callers go through the store objects here rather than writing to the key/value
store directly.
"""
