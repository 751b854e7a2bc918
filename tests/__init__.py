"""
Test suite for the eyewear after-sales engine.

Test Organization:
- conftest.py - shared users, orders, payments, stock and policy fixtures
- test_<operation>.py - engine commands (submit, approve, receive/inspect, reject)
- test_api.py - HTTP surfaces and permissions
- test_refund_cap_concurrency.py - PostgreSQL-only threaded tests
"""
