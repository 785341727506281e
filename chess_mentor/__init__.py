"""Chess Mentor: three persona-attributed move choices per turn, with
move feedback and a persona-driven opponent."""

__version__ = "0.1.0"
