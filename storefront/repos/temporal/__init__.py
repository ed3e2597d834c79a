"""
Temporal activity wrappers and workflow proxies for the storefront
repositories.

Intentionally empty: importing `activities` pulls in asyncpg and httpx,
which must never be loaded inside the workflow sandbox. Import
`activities` from the worker and `proxies` from workflows.
"""
