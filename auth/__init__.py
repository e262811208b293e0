"""auth/ -- Credential and token-lifecycle core for credkeep.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
Transport (HTTP) and mail delivery live outside this package and call into it.
"""
