"""Shared help-panel groups for the plano CLI."""

from __future__ import annotations

from cyclopts import Group

session_group = Group(
    "Session",
    help="Logging and process-wide options.",
    sort_key=0,
)

tables_group = Group(
    "Tables",
    help="Tables to register and how their schemas are inferred.",
    sort_key=1,
)

server_group = Group(
    "Server",
    help="Listening address, capabilities, and caching.",
    sort_key=2,
)

output_group = Group(
    "Output",
    help="Output location, file format, and partition layout.",
    sort_key=3,
)

source_group = Group(
    "Relational Source",
    help="Connection to the relational database.",
    sort_key=4,
)


__all__ = [
    "output_group",
    "server_group",
    "session_group",
    "source_group",
    "tables_group",
]
