"""
Order service package initialization.

This package holds checkout pricing, the order status state machine, order
persistence and the service that ties them together.
"""
