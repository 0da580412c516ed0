# src/itorero/models/org/__init__.py
from .district import District
from .sector import Sector
from .cell import Cell
from .intore_group import IntoreGroup

__all__ = ["District", "Sector", "Cell", "IntoreGroup"]
