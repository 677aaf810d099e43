"""Foundation utilities for shared infrastructure components.

This package provides the resilient outbound HTTP pipeline and its
supporting utilities:
- Base HTTP client with identification headers
- Circuit breaker, retry and fallback client layers
- Structured JSON logging
"""
