# core/trust_debt/__init__.py
"""
Trust Debt core.

This package defines:
- Category store with forest validation
- Orthogonality / coverage validation over keyword signal vectors
- Deterministic category balancing (split / merge / reassign)
- ShortLex ordering of category ids
- Asymmetric intent/reality presence matrix
- Grade calculation with calibrated boundaries
"""
