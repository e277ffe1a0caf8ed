"""
Test suite for Item Pricing Uploads.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_pricing_commit_service.py -v
"""
