# Task board: projects, columns and prioritized cards with local persistence
#
# Components:
#   schema.py      - Data model (Project, Column, Card, BoardState) and snapshot codec
#   ordering.py    - Card priority order (archived, palette color, due date)
#   views.py       - Derived views: sorted column cards, top-ranked cards
#   commands.py    - Board commands, each returning a new BoardState
#   persistence.py - Local cache, save/load/export/import, autosave timer
#   config.py      - YAML + environment configuration
#   server.py      - Flask JSON API
