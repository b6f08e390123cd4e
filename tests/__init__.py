"""
TradeSense Fraud Engine Test Suite

Test Structure:
- tests/fraud/ - scoring, scorers, enforcement, alerts, payments, history and engine tests

Run all tests: pytest
Run only unit tests: pytest -m unit
"""
