"""auth/ -- Authentication package for Kairo: credentials, sessions, users.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, practice/, or client/.
api/ and practice/ import from auth/, not the other way around.
"""
