"""media/ -- Object storage for listing pictures and videos.

Layer rule: media/ imports only core/, stdlib and third-party libraries.
"""
