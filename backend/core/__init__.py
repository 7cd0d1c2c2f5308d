"""Core engine logic: models, price history, alert and signal evaluation.

This package contains pure logic with no I/O dependencies (no database,
Redis, or network access). The live service in app/ wires it to the price
feed, the store and the notification sinks.
"""
