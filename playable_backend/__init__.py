"""Backend for the playable preview service.

Route handlers in server.py stay thin; this package holds:
- path and identifier checks for untrusted input
- bounded ZIP extraction with Zip Slip protection
- the on-disk store of playable content directories
- allow-listed file serving out of those directories

Security note:
Every boundary (extract, delete, serve) re-validates ids and paths itself.
Never put filesystem paths in responses; errors carry a generic message only.
"""
