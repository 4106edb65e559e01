"""auth/ -- Accounts, OTP lifecycle, session tokens and the session gate.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/, listings/, media/, or notify/.
api/ and listings/ import from auth/, not the other way around.
"""
