"""
Integration tests: the harness against a live local HTTP service.
"""
