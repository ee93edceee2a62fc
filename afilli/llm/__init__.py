"""
LLM access for the agent fleet.

Modules:
- generator: TextGenerator with free-text and schema-validated generation
"""
