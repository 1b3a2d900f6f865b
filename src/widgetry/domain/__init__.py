"""Widget registry domain layer: entities, value objects, ports and exceptions."""
