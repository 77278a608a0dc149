"""
tikd: client-side state sync for the Tikd ticketing dashboard.

Settings and team-management screens mutate server documents through an
optimistic coordinator: the local copy changes immediately, the request is
sent, and the server's answer either replaces the local copy or rolls it back.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
