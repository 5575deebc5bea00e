"""practice/ -- Tenancy for Kairo: practices, trial gate, device registry.

Layer rule: practice/ may import from core/ and auth/. It does NOT import
from api/ or client/.
"""
