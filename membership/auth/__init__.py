"""
Account and authentication core for the membership service.

Design goals:
- Two signup paths (local password, Google OAuth) converge on one user record.
- Public 16-character membership ids, validated on generation and on read.
- Cookie-based session (HttpOnly, signed) for same-origin browsers.
"""
