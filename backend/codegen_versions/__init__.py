"""Version orchestration for agent-driven codegen projects."""

__version__ = "0.1.0"
