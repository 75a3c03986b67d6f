"""Message tree assembly and structural editing."""

from ramus.tree.assembler import TreeAssembler
from ramus.tree.editor import CascadeEditor

__all__ = ["CascadeEditor", "TreeAssembler"]
