"""client/ -- Python client for the Kairo API.

Device fingerprinting, persisted session state and trial polling for
desktop/kiosk front-ends and scripts.

Layer rule: client/ talks to the server over HTTP only. It may import pure
helpers from practice.trial and practice.models but never from api/,
auth.store or practice.store.
"""

__version__ = "0.3.0"
