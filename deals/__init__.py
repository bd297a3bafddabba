"""deals/ -- The deal pipeline resource: models, persistence, and use cases.

Layer rule: deals/ may import from core/ and from auth/ (models, policy, and
the shared engine helper). It does NOT import from api/.
"""
