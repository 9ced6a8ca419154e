"""
Services module.

Each external concern (data backend, delivery transport, telemetry store)
has an abstract base, a mock for development and a real implementation,
selected by a cached ``get_*()`` factory in its package.
"""
