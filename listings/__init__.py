"""listings/ -- Profiles, property listings, contact inquiries and meetings.

Layer rule: listings/ may import from core/, auth/ and media/.
It does NOT import from api/ or notify/.
"""
