"""auth/ -- Credential and session lifecycle for the deal pipeline.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or deals/.
api/ and deals/ import from auth/, not the other way around.
"""
