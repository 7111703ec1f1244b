"""Kinship Agents - family tree records with a tool-calling genealogy assistant.

Derives ancestry, descendant, lateral, haplogroup and enslaved-lineage
reports around a home person, and lets a Gemini or Ollama model read and
edit the same tree through a small catalogue of tools.
"""

__version__ = "0.1.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name == "models":
        from kinship_agents import models
        return models
    if name == "relations":
        from kinship_agents import relations
        return relations
    if name == "store":
        from kinship_agents import store
        return store
    if name == "tools":
        from kinship_agents import tools
        return tools
    if name == "config":
        from kinship_agents import config
        return config
    if name == "backends":
        from kinship_agents import backends
        return backends
    if name == "chat":
        from kinship_agents import chat
        return chat
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
