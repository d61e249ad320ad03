"""Services package for refillguard.

This package provides:
- Guarantee decision engine (rules, patterns, expiry, decision chain)
"""
