"""auth/ -- Accounts, sessions and password recovery for Threadline.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and the
cache/ store contract. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
