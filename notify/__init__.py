"""notify/ -- Outbound notification delivery (OTP emails).

Layer rule: notify/ imports only core/, stdlib and third-party libraries.
Callers decide how a delivery failure maps onto an HTTP response.
"""
