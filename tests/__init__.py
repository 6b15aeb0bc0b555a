"""
Test suite for Offer Kit.

Unit tests for pricing, view resolution, compositing and layout, plus
integration tests that drive the catalog, mockup and offer flows through
mock HTTP transports and the Flask test client.
"""
