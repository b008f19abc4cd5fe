"""Application domain: aggregate, events and value objects."""
